"""
Booking endpoints with concurrency-safe seat reservation.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.db.session import get_db, get_session_factory
from ticketing.schemas.booking import BookingCreate, BookingConfirmation, BookingResponse
from ticketing.services.booking_service import (
    Attendee,
    BookingCoordinator,
    get_booking,
    get_user_bookings,
)
from ticketing.services.cache_service import invalidate_event_cache
from ticketing.core.security import CurrentUser, get_current_user, get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_coordinator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> BookingCoordinator:
    return BookingCoordinator(session_factory)


@router.post("/", response_model=BookingConfirmation, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
):
    """
    Book seats for an event.

    Seats are debited and the booking recorded in one transaction. Concurrent
    writes on the same event are retried a bounded number of times before a 409.
    Not enough seats returns 400 with the requested and available counts.
    """
    booking = await coordinator.book(
        booking_data.event_id,
        booking_data.quantity,
        Attendee(
            name=booking_data.name,
            email=booking_data.email,
            mobile=booking_data.mobile,
        ),
        user_id=user_id,
    )
    # Listings show available seats
    await invalidate_event_cache()
    return BookingConfirmation.model_validate(booking)


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    return await get_user_bookings(db, user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get one booking. Visible to its owner and to admins."""
    return await get_booking(db, booking_id, user)
