"""
Inventory ledger: the only writer of Event.available_seats.

Every mutation is a single conditional UPDATE that also bumps the event's
`version`, so the check and the write are one statement on the database side:

    UPDATE events
       SET available_seats = available_seats - :q, version = version + 1
     WHERE id = :event_id AND version = :seen_version AND available_seats >= :q

When no row matches, the ledger re-reads the row to tell the caller why:
the event is gone, there are not enough seats, or somebody else wrote the row
since it was read (CapacityConflict). The ledger reports and never retries;
retry policy belongs to the booking coordinator.

A ledger is bound to one unit of work's session and never commits.
"""

from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.exceptions import EventNotFoundError, InsufficientCapacityError, InvalidInputError
from ticketing.core.logging import get_logger
from ticketing.models.event import Event

logger = get_logger(__name__)


class CapacityConflict(Exception):
    """The event row changed between the read and the conditional write."""

    def __init__(self, event_id: int, seen_version: Optional[int] = None) -> None:
        super().__init__(f"Concurrent write on event {event_id}")
        self.event_id = event_id
        self.seen_version = seen_version


def require_positive_quantity(quantity) -> None:
    # bool is an int subclass; True is not a seat count
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInputError("Quantity must be a positive integer", field="quantity")


class InventoryLedger:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _read(self, event_id: int) -> tuple[int, int, int]:
        result = await self._session.execute(
            select(Event.available_seats, Event.total_seats, Event.version)
            .where(Event.id == event_id)
        )
        row = result.one_or_none()
        if row is None:
            raise EventNotFoundError(event_id)
        return row.available_seats, row.total_seats, row.version

    async def peek(self, event_id: int) -> int:
        """Current available seats. Read-only."""
        available, _total, _version = await self._read(event_id)
        return available

    async def debit(self, event_id: int, quantity: int, expected_version: int) -> int:
        """
        Take `quantity` seats if the event is still at `expected_version`.

        Returns the remaining available seats.
        Raises InsufficientCapacityError, EventNotFoundError or CapacityConflict.
        """
        require_positive_quantity(quantity)

        result = await self._session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.version == expected_version,
                Event.available_seats >= quantity,
            )
            .values(
                available_seats=Event.available_seats - quantity,
                version=Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        available, _total, version = await self._read(event_id)
        if result.rowcount == 1:
            return available

        if available < quantity:
            logger.warning(
                "booking_failed_no_seats",
                event_id=event_id,
                requested=quantity,
                available=available,
            )
            raise InsufficientCapacityError(event_id, requested=quantity, available=available)

        logger.info(
            "inventory_version_conflict",
            event_id=event_id,
            seen_version=expected_version,
            current_version=version,
        )
        raise CapacityConflict(event_id, seen_version=expected_version)

    async def credit(self, event_id: int, quantity: int) -> int:
        """Give seats back, never beyond total_seats. Returns the new available count."""
        require_positive_quantity(quantity)

        restored = Event.available_seats + quantity
        result = await self._session.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(
                available_seats=case(
                    (restored > Event.total_seats, Event.total_seats),
                    else_=restored,
                ),
                version=Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise EventNotFoundError(event_id)
        return await self.peek(event_id)

    async def resize(self, event_id: int, total_seats: int) -> int:
        """
        Change an event's total capacity, keeping already-booked seats booked.

        available_seats moves by the same delta as total_seats. Shrinking below
        the number of booked seats is rejected.
        """
        if isinstance(total_seats, bool) or not isinstance(total_seats, int) or total_seats < 0:
            raise InvalidInputError("total_seats must be a non-negative integer", field="total_seats")

        delta = total_seats - Event.total_seats
        result = await self._session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.available_seats + delta >= 0,
            )
            .values(
                total_seats=total_seats,
                available_seats=Event.available_seats + delta,
                version=Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return await self.peek(event_id)

        available, total, _version = await self._read(event_id)
        booked = total - available
        raise InvalidInputError(
            f"Cannot reduce capacity to {total_seats}: {booked} seats are already booked",
            field="total_seats",
        )
