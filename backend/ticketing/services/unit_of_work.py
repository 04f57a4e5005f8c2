"""
Unit of work for the booking transaction.

One unit of work owns one AsyncSession and everything that writes through it:
the event reader, the inventory ledger and the booking repository. Leaving the
`async with` block without an explicit commit() rolls everything back, so a
debit can never outlive a failed booking insert, an exception or a timeout.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.services.inventory import InventoryLedger


class EventReader:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, event_id: int) -> Optional[Event]:
        result = await self._session.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class BookingRepository:
    """Append-only from the booking transaction's point of view."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, booking: Booking) -> Booking:
        self._session.add(booking)
        await self._session.flush()
        await self._session.refresh(booking)
        return booking


class UnitOfWork:
    ledger_class = InventoryLedger
    events_class = EventReader
    bookings_class = BookingRepository

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._committed = False

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        self.events = self.events_class(self.session)
        self.ledger = self.ledger_class(self.session)
        self.bookings = self.bookings_class(self.session)
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if not self._committed:
                await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        await self.session.rollback()
