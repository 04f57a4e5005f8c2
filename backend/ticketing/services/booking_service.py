"""
Booking service with concurrency-safe seat reservation.

CONCURRENCY STRATEGY: Per-event serialization + Optimistic Locking with Retry
============================================================================

Problem:
  Two requests try to book the last seats of an event simultaneously.
  Both read available_seats=N, both see quantity <= N, both debit.
  Result: Overbooking by up to q1 + q2 - N seats.

Solution, two layers:

  1. Inside one process, every attempt on an event id runs under that event's
     KeyedLock entry. The read-check-write sequence for one event never
     interleaves with another from the same process. Requests for different
     events do not wait on each other.

  2. Across processes (several API workers against one database), the ledger's
     conditional UPDATE only applies if the event's `version` is still the one
     read at the start of the attempt:

       UPDATE events SET available_seats = available_seats - N, version = version + 1
        WHERE id = :event_id AND version = :seen AND available_seats >= N

     Zero rows with seats still available means another writer got there first.
     The whole unit of work is rolled back and retried from a fresh read, with
     exponential backoff, up to BOOKING_MAX_ATTEMPTS times.

  The DB CHECK constraint (available_seats >= 0) is the final safety net.

Atomicity:
  Each attempt is one UnitOfWork: event read, debit, amount computation and the
  booking insert share a session and commit together. Anything short of a
  successful commit (error, insufficient seats, conflict, timeout) rolls back,
  so no debit survives without its booking and vice versa.

  BOOKING_TIMEOUT_SECONDS bounds the read, debit and insert. The commit is
  always awaited to completion, so a timeout is only reported for work that
  was rolled back.

Price snapshot:
  total_amount is computed from the price read in the same unit of work as the
  debit. Any edit to the event bumps its version, so a price read that went
  stale before the debit turns into a conflict and a fresh read.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, NoReturn, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.concurrency import KeyedLock
from ticketing.core.config import get_settings
from ticketing.core.exceptions import (
    BookingConflictError,
    BookingError,
    BookingNotFoundError,
    BookingTimeoutError,
    EventNotFoundError,
    InvalidInputError,
)
from ticketing.core.logging import get_logger
from ticketing.core.metrics import (
    booking_latency,
    record_booking_attempt,
    record_db_retry,
    record_seats_booked,
)
from ticketing.core.security import CurrentUser
from ticketing.models.booking import Booking, BookingStatus
from ticketing.services.inventory import CapacityConflict, require_positive_quantity
from ticketing.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)

CENTS = Decimal("0.01")

# PostgreSQL serialization_failure / deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}

# Shared by every coordinator in this process
event_locks = KeyedLock()


@dataclass(frozen=True)
class Attendee:
    name: str
    email: str
    mobile: str

    def validate(self) -> None:
        for field in ("name", "email", "mobile"):
            value = getattr(self, field)
            if not isinstance(value, str) or not value.strip():
                raise InvalidInputError(f"Attendee {field} is required", field=field)


def _is_write_conflict(exc: DBAPIError) -> bool:
    """Database-reported write conflicts that a fresh attempt can resolve."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig)


class BookingCoordinator:
    """
    Runs one booking request as a single atomic, isolated unit of work.

    The coordinator is the only place that decides between retrying and
    surfacing an error.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        locks: Optional[KeyedLock] = None,
        uow_factory: Optional[Callable[[], UnitOfWork]] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._locks = locks if locks is not None else event_locks
        self._uow_factory = uow_factory or (lambda: UnitOfWork(session_factory))
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.BOOKING_MAX_ATTEMPTS
        )
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.BOOKING_RETRY_BACKOFF_SECONDS
        )
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.BOOKING_TIMEOUT_SECONDS
        )
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def book(
        self,
        event_id: int,
        quantity: int,
        attendee: Attendee,
        user_id: Optional[int] = None,
    ) -> Booking:
        """
        Reserve `quantity` seats of `event_id` and record the booking.

        Returns the committed Booking. Raises InvalidInputError,
        EventNotFoundError, InsufficientCapacityError, BookingConflictError or
        BookingTimeoutError; in every error case nothing was persisted.
        """
        start = time.perf_counter()
        try:
            require_positive_quantity(quantity)
            attendee.validate()
            booking = await self._book_with_retry(event_id, quantity, attendee, user_id)
        except BookingError as e:
            record_booking_attempt(e.code.value.lower())
            raise
        except Exception:
            record_booking_attempt("error")
            raise
        finally:
            booking_latency.observe(time.perf_counter() - start)

        record_booking_attempt("success")
        record_seats_booked(quantity)
        return booking

    async def _book_with_retry(
        self,
        event_id: int,
        quantity: int,
        attendee: Attendee,
        user_id: Optional[int],
    ) -> Booking:
        for attempt in range(1, self.max_attempts + 1):
            try:
                booking = await self._attempt(event_id, quantity, attendee, user_id)
            except asyncio.TimeoutError:
                logger.warning(
                    "booking_timeout",
                    event_id=event_id,
                    attempt=attempt,
                    timeout_seconds=self.timeout_seconds,
                )
                raise BookingTimeoutError(event_id, self.timeout_seconds)
            except CapacityConflict:
                reason = "version_conflict"
            except DBAPIError as e:
                if not _is_write_conflict(e):
                    raise
                reason = "database_conflict"
            else:
                logger.info(
                    "booking_created",
                    booking_id=booking.id,
                    event_id=event_id,
                    user_id=user_id,
                    quantity=quantity,
                    total_amount=str(booking.total_amount),
                    attempt=attempt,
                )
                return booking

            if attempt == self.max_attempts:
                break

            record_db_retry()
            logger.info("booking_retry", event_id=event_id, attempt=attempt, reason=reason)
            await asyncio.sleep(self._backoff(attempt))

        logger.warning("booking_conflict_exhausted", event_id=event_id, attempts=self.max_attempts)
        raise BookingConflictError(event_id, attempts=self.max_attempts)

    def _backoff(self, attempt: int) -> float:
        base = self.backoff_seconds
        return base * (2 ** (attempt - 1)) + random.uniform(0, base)

    async def _attempt(
        self,
        event_id: int,
        quantity: int,
        attendee: Attendee,
        user_id: Optional[int],
    ) -> Booking:
        async with self._locks.hold(event_id):
            async with self._uow_factory() as uow:
                booking = await asyncio.wait_for(
                    self._stage(uow, event_id, quantity, attendee, user_id),
                    timeout=self.timeout_seconds,
                )
                # Not under the deadline: a COMMIT cancelled in flight can still land
                await uow.commit()
                return booking

    async def _stage(
        self,
        uow: UnitOfWork,
        event_id: int,
        quantity: int,
        attendee: Attendee,
        user_id: Optional[int],
    ) -> Booking:
        """Read, debit and insert inside the unit of work, without committing."""
        event = await uow.events.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)

        price = event.price
        await uow.ledger.debit(event_id, quantity, expected_version=event.version)

        return await uow.bookings.add(
            Booking(
                event_id=event_id,
                user_id=user_id,
                name=attendee.name.strip(),
                email=attendee.email.strip(),
                mobile=attendee.mobile.strip(),
                quantity=quantity,
                total_amount=(Decimal(price) * quantity).quantize(CENTS),
                status=BookingStatus.CONFIRMED.value,
            )
        )

    async def cancel(self, booking_id: int) -> NoReturn:
        """
        Extension point for cancelling a booking.

        The `cancelled` status and InventoryLedger.credit exist, but the rules
        (who may cancel, refund windows, partial cancellation) are not defined,
        so no cancellation is performed.
        """
        raise NotImplementedError("Booking cancellation is not supported yet")


async def get_booking(db: AsyncSession, booking_id: int, user: CurrentUser) -> Booking:
    """Owner or admin only; anyone else gets not-found."""
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if booking is None or (booking.user_id != user.id and not user.is_admin):
        raise BookingNotFoundError(booking_id)
    return booking


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all bookings for a user, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())
