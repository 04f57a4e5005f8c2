"""
Event service handling CRUD operations.

Seat counts are never assigned here directly: creation sets the initial
inventory, and capacity edits go through InventoryLedger.resize so they
compose with concurrent bookings.
"""

from datetime import date as date_type, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from fastapi import HTTPException, status

from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.schemas.event import EventCreate, EventUpdate
from ticketing.services.inventory import InventoryLedger
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


def _concurrent_edit() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Event was modified concurrently. Please reload and try again.",
    )


async def create_event(db: AsyncSession, event_data: EventCreate, created_by: int) -> Event:
    """Create a new event. Available seats default to the full capacity."""
    event_date = event_data.date
    if event_date.tzinfo is None:
        event_date = event_date.replace(tzinfo=timezone.utc)
    if event_date <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )

    available = event_data.available_seats
    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        date=event_date,
        img=event_data.img,
        total_seats=event_data.total_seats,
        available_seats=event_data.total_seats if available is None else available,
        price=event_data.price,
        created_by=created_by,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        title=event.title,
        seats=event.total_seats,
        available=event.available_seats,
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    search: Optional[str] = None,
    location: Optional[str] = None,
    on_date: Optional[date_type] = None,
) -> tuple[list[Event], int]:
    """
    List events ordered by date, with optional filters:
    title substring (case-insensitive), exact location, and calendar day (UTC).
    """
    query = select(Event)

    if search:
        query = query.where(Event.title.ilike(f"%{search}%"))
    if location:
        query = query.where(Event.location == location)
    if on_date:
        day_start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
        query = query.where(Event.date >= day_start, Event.date < day_start + timedelta(days=1))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def list_events_by_creator(db: AsyncSession, user_id: int) -> list[Event]:
    result = await db.execute(
        select(Event)
        .where(Event.created_by == user_id)
        .order_by(Event.date.asc(), Event.id.asc())
    )
    return list(result.scalars().all())


async def update_event(db: AsyncSession, event_id: int, event_data: EventUpdate) -> Event:
    """
    Apply an administrative edit.

    Plain fields go through the ORM (version-checked by version_id_col, so an
    edit racing a booking fails with 409 instead of silently winning).
    A total_seats change goes through the inventory ledger.
    """
    event = await get_event(db, event_id)
    changes = event_data.model_dump(exclude_unset=True, exclude_none=True)
    total_seats = changes.pop("total_seats", None)

    for field, value in changes.items():
        setattr(event, field, value)

    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        raise _concurrent_edit()

    if total_seats is not None and total_seats != event.total_seats:
        await InventoryLedger(db).resize(event_id, total_seats)

    await db.commit()
    await db.refresh(event)

    logger.info(
        "event_updated",
        event_id=event.id,
        fields=sorted(changes) + (["total_seats"] if total_seats is not None else []),
    )
    return event


async def delete_event(db: AsyncSession, event_id: int) -> None:
    """Delete an event. Events with bookings are kept so booking records stay intact."""
    event = await get_event(db, event_id)

    booking_count = (
        await db.execute(select(func.count(Booking.id)).where(Booking.event_id == event_id))
    ).scalar()
    if booking_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Event {event_id} has {booking_count} bookings and cannot be deleted",
        )

    await db.delete(event)
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise _concurrent_edit()

    logger.info("event_deleted", event_id=event_id)
