"""
Event endpoints with Redis caching on list operations.
"""

from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.session import get_db
from ticketing.schemas.event import (
    AvailabilityResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventUpdate,
)
from ticketing.services.event_service import (
    create_event,
    delete_event,
    get_event,
    list_events,
    list_events_by_creator,
    update_event,
)
from ticketing.services.inventory import InventoryLedger
from ticketing.services.cache_service import (
    get_cached_events,
    invalidate_event_cache,
    make_event_list_key,
    set_cached_events,
)
from ticketing.core.security import CurrentUser, get_current_user_id, require_admin
from ticketing.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Admin only."""
    event = await create_event(db, event_data, admin.id)
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=255),
    location: Optional[str] = Query(None, max_length=255),
    date: Optional[date_type] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    List events ordered by date, with optional title search, location and day filters.
    Results are cached in Redis; any event write or booking invalidates them.
    """
    key = make_event_list_key(page, page_size, search, location, date)
    cached = await get_cached_events(key)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, search, location, date)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(key, response_data)

    return EventListResponse(**response_data)


@router.get("/created-by/{user_id}", response_model=list[EventResponse])
async def list_events_by_creator_endpoint(
    user_id: int,
    _caller: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Events created by one user. Requires authentication."""
    return await list_events_by_creator(db, user_id)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs real-time seat counts)."""
    return await get_event(db, event_id)


@router.get("/{event_id}/availability", response_model=AvailabilityResponse)
async def get_availability_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Live seat count, read straight from the inventory ledger."""
    available = await InventoryLedger(db).peek(event_id)
    return AvailabilityResponse(event_id=event_id, available_seats=available)


@router.put("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    _admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit an event. Admin only. Capacity changes keep booked seats booked."""
    event = await update_event(db, event_id, event_data)
    await invalidate_event_cache()
    return event


@router.delete("/{event_id}")
async def delete_event_endpoint(
    event_id: int,
    _admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event without bookings. Admin only."""
    await delete_event(db, event_id)
    await invalidate_event_cache()
    return {"deleted": True}
