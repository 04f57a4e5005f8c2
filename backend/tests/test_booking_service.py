"""
Tests for the booking coordinator.

These drive BookingCoordinator directly against a real SQLite database file,
including concurrent requests, injected failures and forced write conflicts.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from conftest import add_event, load_event
from ticketing.core.concurrency import KeyedLock
from ticketing.core.exceptions import (
    BookingConflictError,
    BookingTimeoutError,
    EventNotFoundError,
    InsufficientCapacityError,
    InvalidInputError,
)
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.services.booking_service import Attendee, BookingCoordinator
from ticketing.services.inventory import InventoryLedger
from ticketing.services.unit_of_work import BookingRepository, UnitOfWork

ADA = Attendee(name="Ada Lovelace", email="ada@example.com", mobile="+44 20 7946 0000")


def make_coordinator(session_factory, **kwargs) -> BookingCoordinator:
    kwargs.setdefault("locks", KeyedLock())
    kwargs.setdefault("backoff_seconds", 0.001)
    return BookingCoordinator(session_factory, **kwargs)


async def count_bookings(session_factory, event_id: int) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(Booking).where(Booking.event_id == event_id)
        )
        return result.scalar_one()


async def booked_quantity(session_factory, event_id: int) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.coalesce(func.sum(Booking.quantity), 0)).where(Booking.event_id == event_id)
        )
        return result.scalar_one()


async def bump_version(session_factory, event_id: int) -> None:
    """An out-of-band write, as another API worker would make."""
    async with session_factory() as other:
        await other.execute(
            update(Event).where(Event.id == event_id).values(version=Event.version + 1)
        )
        await other.commit()


def interfering_uow(session_factory, times: int):
    """Units of work whose ledger sees a concurrent write before the first `times` debits."""
    state = {"remaining": times}

    class InterferingLedger(InventoryLedger):
        async def debit(self, event_id, quantity, expected_version):
            if state["remaining"] > 0:
                state["remaining"] -= 1
                await bump_version(session_factory, event_id)
            return await super().debit(event_id, quantity, expected_version)

    class InterferingUnitOfWork(UnitOfWork):
        ledger_class = InterferingLedger

    return lambda: InterferingUnitOfWork(session_factory)


# =============================================================================
# Single request behaviour
# =============================================================================

@pytest.mark.asyncio
async def test_book_records_booking_and_debits(session_factory, small_event):
    coordinator = make_coordinator(session_factory)

    booking = await coordinator.book(small_event.id, 4, ADA, user_id=None)

    assert booking.id is not None
    assert booking.event_id == small_event.id
    assert booking.quantity == 4
    assert booking.total_amount == Decimal("80.00")
    assert booking.status == "confirmed"
    assert booking.name == "Ada Lovelace"
    assert (await load_event(session_factory, small_event.id)).available_seats == 6


@pytest.mark.asyncio
async def test_book_more_than_available(session_factory, small_event):
    coordinator = make_coordinator(session_factory)
    await coordinator.book(small_event.id, 4, ADA)

    with pytest.raises(InsufficientCapacityError) as exc_info:
        await coordinator.book(small_event.id, 7, ADA)

    assert exc_info.value.requested == 7
    assert exc_info.value.available == 6
    assert (await load_event(session_factory, small_event.id)).available_seats == 6
    assert await count_bookings(session_factory, small_event.id) == 1


@pytest.mark.asyncio
async def test_book_sold_out(session_factory, sold_out_event):
    coordinator = make_coordinator(session_factory)

    with pytest.raises(InsufficientCapacityError) as exc_info:
        await coordinator.book(sold_out_event.id, 1, ADA)

    assert exc_info.value.available == 0
    assert await count_bookings(session_factory, sold_out_event.id) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
async def test_book_invalid_quantity(session_factory, small_event, quantity):
    coordinator = make_coordinator(session_factory)

    with pytest.raises(InvalidInputError):
        await coordinator.book(small_event.id, quantity, ADA)

    assert (await load_event(session_factory, small_event.id)).available_seats == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["name", "email", "mobile"])
async def test_book_requires_attendee_fields(session_factory, small_event, field):
    coordinator = make_coordinator(session_factory)
    values = {"name": "Ada", "email": "ada@example.com", "mobile": "555-0100"}
    values[field] = "   "

    with pytest.raises(InvalidInputError) as exc_info:
        await coordinator.book(small_event.id, 1, Attendee(**values))

    assert exc_info.value.field == field
    assert await count_bookings(session_factory, small_event.id) == 0


@pytest.mark.asyncio
async def test_book_unknown_event(session_factory):
    coordinator = make_coordinator(session_factory)

    with pytest.raises(EventNotFoundError):
        await coordinator.book(424242, 1, ADA)


@pytest.mark.asyncio
async def test_sequence_of_bookings_conserves_seats(session_factory):
    event = await add_event(session_factory, total_seats=20, available_seats=20)
    coordinator = make_coordinator(session_factory)

    for quantity in (1, 2, 3, 5):
        await coordinator.book(event.id, quantity, ADA)

    stored = await load_event(session_factory, event.id)
    assert stored.available_seats == 9
    assert stored.available_seats + await booked_quantity(session_factory, event.id) == stored.total_seats


@pytest.mark.asyncio
async def test_price_snapshot_survives_price_change(session_factory):
    event = await add_event(session_factory, price=Decimal("50.00"))
    coordinator = make_coordinator(session_factory)

    booking = await coordinator.book(event.id, 3, ADA)
    assert booking.total_amount == Decimal("150.00")

    async with session_factory() as session:
        stored = await session.get(Event, event.id)
        stored.price = Decimal("60.00")
        await session.commit()

    async with session_factory() as session:
        reloaded = await session.get(Booking, booking.id)
    assert reloaded.total_amount == Decimal("150.00")


@pytest.mark.asyncio
async def test_total_amount_rounds_to_cents(session_factory):
    event = await add_event(session_factory, price=Decimal("19.99"))
    coordinator = make_coordinator(session_factory)

    booking = await coordinator.book(event.id, 3, ADA)

    assert booking.total_amount == Decimal("59.97")


@pytest.mark.asyncio
async def test_cancel_is_not_supported(session_factory, small_event):
    coordinator = make_coordinator(session_factory)
    booking = await coordinator.book(small_event.id, 2, ADA)

    with pytest.raises(NotImplementedError):
        await coordinator.cancel(booking.id)

    assert (await load_event(session_factory, small_event.id)).available_seats == 8


# =============================================================================
# Concurrency
# =============================================================================

@pytest.mark.asyncio
async def test_concurrent_requests_never_oversell(session_factory):
    """15 single-seat requests against 5 seats: exactly 5 succeed."""
    event = await add_event(session_factory, total_seats=5, available_seats=5)
    coordinator = make_coordinator(session_factory)

    results = await asyncio.gather(
        *(coordinator.book(event.id, 1, ADA) for _ in range(15)),
        return_exceptions=True,
    )

    successes = [r for r in results if isinstance(r, Booking)]
    failures = [r for r in results if not isinstance(r, Booking)]
    assert len(successes) == 5
    assert all(isinstance(f, InsufficientCapacityError) for f in failures)
    assert (await load_event(session_factory, event.id)).available_seats == 0
    assert await count_bookings(session_factory, event.id) == 5


@pytest.mark.asyncio
async def test_concurrent_mixed_quantities_conserve_seats(session_factory):
    event = await add_event(session_factory, total_seats=12, available_seats=12)
    coordinator = make_coordinator(session_factory)
    quantities = [3, 5, 2, 4, 1, 6, 2, 3]

    results = await asyncio.gather(
        *(coordinator.book(event.id, q, ADA) for q in quantities),
        return_exceptions=True,
    )

    booked = sum(r.quantity for r in results if isinstance(r, Booking))
    stored = await load_event(session_factory, event.id)
    assert booked <= 12
    assert stored.available_seats == 12 - booked
    assert await booked_quantity(session_factory, event.id) == booked


@pytest.mark.asyncio
async def test_independent_workers_never_oversell(session_factory):
    """Two coordinators with their own locks stand in for two API processes."""
    event = await add_event(session_factory, total_seats=4, available_seats=4)
    worker_a = make_coordinator(session_factory, max_attempts=10)
    worker_b = make_coordinator(session_factory, max_attempts=10)

    calls = [(worker_a if i % 2 else worker_b).book(event.id, 1, ADA) for i in range(10)]
    results = await asyncio.gather(*calls, return_exceptions=True)

    successes = [r for r in results if isinstance(r, Booking)]
    failures = [r for r in results if not isinstance(r, Booking)]
    assert len(successes) <= 4
    assert all(isinstance(f, (InsufficientCapacityError, BookingConflictError)) for f in failures)

    stored = await load_event(session_factory, event.id)
    assert stored.available_seats == 4 - len(successes)
    assert await count_bookings(session_factory, event.id) == len(successes)


@pytest.mark.asyncio
async def test_different_events_book_independently(session_factory):
    first = await add_event(session_factory, total_seats=3, available_seats=3)
    second = await add_event(session_factory, total_seats=3, available_seats=3)
    coordinator = make_coordinator(session_factory)

    await asyncio.gather(
        *(coordinator.book(first.id, 1, ADA) for _ in range(3)),
        *(coordinator.book(second.id, 1, ADA) for _ in range(3)),
    )

    assert (await load_event(session_factory, first.id)).available_seats == 0
    assert (await load_event(session_factory, second.id)).available_seats == 0


# =============================================================================
# Atomicity and failure injection
# =============================================================================

@pytest.mark.asyncio
async def test_failed_booking_insert_rolls_back_debit(session_factory, small_event):
    class FailingBookings(BookingRepository):
        async def add(self, booking):
            raise RuntimeError("simulated storage failure")

    class FailingUnitOfWork(UnitOfWork):
        bookings_class = FailingBookings

    coordinator = make_coordinator(
        session_factory, uow_factory=lambda: FailingUnitOfWork(session_factory)
    )

    with pytest.raises(RuntimeError):
        await coordinator.book(small_event.id, 4, ADA)

    stored = await load_event(session_factory, small_event.id)
    assert stored.available_seats == 10
    assert stored.version == small_event.version
    assert await count_bookings(session_factory, small_event.id) == 0


@pytest.mark.asyncio
async def test_failed_commit_leaves_nothing_behind(session_factory, small_event):
    class LostConnectionUnitOfWork(UnitOfWork):
        async def commit(self):
            await self.session.flush()
            raise ConnectionError("connection lost before commit")

    coordinator = make_coordinator(
        session_factory, uow_factory=lambda: LostConnectionUnitOfWork(session_factory)
    )

    with pytest.raises(ConnectionError):
        await coordinator.book(small_event.id, 2, ADA)

    assert (await load_event(session_factory, small_event.id)).available_seats == 10
    assert await count_bookings(session_factory, small_event.id) == 0


@pytest.mark.asyncio
async def test_conflict_is_retried_from_fresh_read(session_factory, small_event):
    coordinator = make_coordinator(
        session_factory,
        uow_factory=interfering_uow(session_factory, times=1),
    )

    booking = await coordinator.book(small_event.id, 3, ADA)

    assert booking.quantity == 3
    stored = await load_event(session_factory, small_event.id)
    assert stored.available_seats == 7
    # One out-of-band bump plus the successful debit
    assert stored.version == small_event.version + 2
    assert await count_bookings(session_factory, small_event.id) == 1


@pytest.mark.asyncio
async def test_persistent_conflict_surfaces_after_bounded_attempts(session_factory, small_event):
    coordinator = make_coordinator(
        session_factory,
        uow_factory=interfering_uow(session_factory, times=100),
        max_attempts=3,
    )

    with pytest.raises(BookingConflictError) as exc_info:
        await coordinator.book(small_event.id, 3, ADA)

    assert exc_info.value.attempts == 3
    stored = await load_event(session_factory, small_event.id)
    assert stored.available_seats == 10
    assert stored.version == small_event.version + 3
    assert await count_bookings(session_factory, small_event.id) == 0


@pytest.mark.asyncio
async def test_slow_attempt_times_out_and_rolls_back(session_factory, small_event):
    class SlowLedger(InventoryLedger):
        async def debit(self, event_id, quantity, expected_version):
            remaining = await super().debit(event_id, quantity, expected_version)
            await asyncio.sleep(5)
            return remaining

    class SlowUnitOfWork(UnitOfWork):
        ledger_class = SlowLedger

    coordinator = make_coordinator(
        session_factory,
        uow_factory=lambda: SlowUnitOfWork(session_factory),
        timeout_seconds=0.2,
    )

    with pytest.raises(BookingTimeoutError):
        await coordinator.book(small_event.id, 2, ADA)

    assert (await load_event(session_factory, small_event.id)).available_seats == 10
    assert await count_bookings(session_factory, small_event.id) == 0


@pytest.mark.asyncio
async def test_slow_commit_acknowledgement_returns_saved_booking(session_factory, small_event):
    class SlowAckUnitOfWork(UnitOfWork):
        async def commit(self):
            await super().commit()
            await asyncio.sleep(0.5)

    coordinator = make_coordinator(
        session_factory,
        uow_factory=lambda: SlowAckUnitOfWork(session_factory),
        timeout_seconds=0.2,
    )

    booking = await coordinator.book(small_event.id, 4, ADA)

    assert booking.quantity == 4
    assert (await load_event(session_factory, small_event.id)).available_seats == 6
    assert await count_bookings(session_factory, small_event.id) == 1


# =============================================================================
# Configuration
# =============================================================================

@pytest.mark.asyncio
async def test_explicit_zero_timeout_is_honoured(session_factory, small_event):
    coordinator = make_coordinator(session_factory, timeout_seconds=0)
    assert coordinator.timeout_seconds == 0

    with pytest.raises(BookingTimeoutError):
        await coordinator.book(small_event.id, 1, ADA)

    assert (await load_event(session_factory, small_event.id)).available_seats == 10
    assert await count_bookings(session_factory, small_event.id) == 0


@pytest.mark.asyncio
async def test_zero_attempts_is_rejected(session_factory):
    with pytest.raises(ValueError):
        make_coordinator(session_factory, max_attempts=0)


@pytest.mark.asyncio
async def test_unset_options_fall_back_to_settings(session_factory):
    coordinator = BookingCoordinator(session_factory)

    assert coordinator.max_attempts == 5
    assert coordinator.timeout_seconds == 5.0
