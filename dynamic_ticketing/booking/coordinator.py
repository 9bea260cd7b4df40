"""
Booking transaction coordinator.

``reserve`` runs one unit of work per call:

    lock event -> re-read capacity -> reject or price -> insert booking
    -> increment reserved_count -> commit

The event lock is the only synchronization point. Reservations for the same
event are serialized in lock-acquisition order; reservations for different
events do not contend. Any exception inside the unit rolls it back, so a failed
call leaves neither a booking row nor an inventory increment behind.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from dynamic_ticketing.config import get_settings
from dynamic_ticketing.domain import (
    Booking,
    EventNotFoundError,
    InsufficientInventoryError,
    TransientStorageError,
)
from dynamic_ticketing.domain.models import utc_now
from dynamic_ticketing.pricing.calculator import PricingCalculator
from dynamic_ticketing.stores.interfaces import BookingStore
from dynamic_ticketing.utils.logging import get_logger

log = get_logger(__name__)


class BookingCoordinator:
    """Atomic check-and-reserve against a BookingStore."""

    def __init__(
        self,
        store: BookingStore,
        calculator: Optional[PricingCalculator] = None,
        clock: Callable[[], datetime] = utc_now,
        demand_window: Optional[timedelta] = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._calculator = calculator or PricingCalculator()
        self._clock = clock
        self.demand_window = demand_window or timedelta(minutes=settings.demand_window_minutes)

    def reserve(
        self,
        event_id: int,
        quantity: int,
        booker_contact: str,
        *,
        idempotency_key: Optional[str] = None,
        lock_timeout_ms: Optional[int] = None,
    ) -> Booking:
        """
        Reserve ``quantity`` tickets at the price derived under the event lock.

        Passing an ``idempotency_key`` makes retries safe: a second call with the
        same key returns the booking already committed for it. The key alone
        identifies the request; a replay with a different ``quantity`` or
        ``booker_contact`` still returns the original booking unchanged and
        reserves nothing.

        Raises:
            ValueError: If quantity is less than 1.
            EventNotFoundError: If the event does not exist.
            InsufficientInventoryError: If fewer than ``quantity`` tickets remain.
            TransientStorageError: On lock timeout or storage failure; safe to retry.
        """
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        try:
            with self._store.transaction(lock_timeout_ms) as tx:
                event = tx.lock_event(event_id)

                if idempotency_key is not None:
                    existing = tx.find_booking(event_id, idempotency_key)
                    if existing is not None:
                        log.info(
                            "Replayed booking for idempotency key",
                            extra={"event_id": event_id, "booking_id": existing.id},
                        )
                        return existing

                remaining = event.remaining
                if remaining < quantity:
                    raise InsufficientInventoryError(event_id, remaining, quantity)

                now = self._clock()
                recent = tx.count_bookings_since(event_id, now - self.demand_window, now)
                pricing = self._calculator.calculate(event, recent, now)

                booking = tx.insert_booking(
                    event_id,
                    quantity,
                    pricing.current_price,
                    booker_contact,
                    idempotency_key,
                )
                tx.increment_reserved(event_id, quantity)
                tx.set_current_price(event_id, pricing.current_price)
        except InsufficientInventoryError as exc:
            log.info(
                "Reservation rejected: insufficient inventory",
                extra={"event_id": event_id, "requested": quantity, "remaining": exc.remaining},
            )
            raise
        except TransientStorageError as exc:
            log.warning(
                "Reservation rolled back after storage failure",
                extra={"event_id": event_id, "requested": quantity, "error": str(exc)},
            )
            raise

        log.info(
            "Booking committed",
            extra={
                "event_id": event_id,
                "booking_id": booking.id,
                "quantity": quantity,
                "unit_price": booking.unit_price,
                "price_paid": booking.price_paid,
            },
        )
        return booking

    def list_bookings(self, event_id: int) -> list[Booking]:
        """Committed bookings for an event, in commit order."""
        if self._store.get_event(event_id) is None:
            raise EventNotFoundError(event_id)
        return self._store.list_bookings(event_id)


__all__ = ["BookingCoordinator"]
