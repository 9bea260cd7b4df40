"""
In-process implementation of the BookingStore.

Per-event mutual exclusion comes from one ``threading.Lock`` per event id, so
reservations for different events never contend. Only valid for a
single-process deployment; it backs the unit tests and the ``memory`` backend
of the contention simulator.
"""

from __future__ import annotations

import itertools
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from dynamic_ticketing.domain import (
    Booking,
    Event,
    EventNotFoundError,
    LockTimeoutError,
    NewEvent,
)
from dynamic_ticketing.domain.models import utc_now
from dynamic_ticketing.stores.interfaces import BookingStore, StoreTransaction

DEFAULT_LOCK_TIMEOUT_MS = 5_000


def _in_window(booking: Booking, since: datetime, until: Optional[datetime]) -> bool:
    if booking.committed_at < since:
        return False
    return until is None or booking.committed_at <= until


class InMemoryTransaction(StoreTransaction):
    """Buffers writes and publishes them atomically on commit."""

    def __init__(self, store: "InMemoryStore", lock_timeout_ms: int) -> None:
        self._store = store
        self._lock_timeout_ms = lock_timeout_ms
        self._held: Dict[int, threading.Lock] = {}
        self._bookings: List[Booking] = []
        self._reserved_delta: Dict[int, int] = {}
        self._prices: Dict[int, int] = {}
        self._closed = False

    def lock_event(self, event_id: int) -> Event:
        self._ensure_open()
        if event_id not in self._held:
            lock = self._store._lock_for(event_id)
            if not lock.acquire(timeout=self._lock_timeout_ms / 1000):
                raise LockTimeoutError(event_id, self._lock_timeout_ms)
            self._held[event_id] = lock
        return self._snapshot(event_id)

    def count_bookings_since(
        self, event_id: int, since: datetime, until: Optional[datetime] = None
    ) -> int:
        self._ensure_open()
        committed = self._store.count_bookings_since(event_id, since, until)
        pending = sum(
            1 for b in self._bookings if b.event_id == event_id and _in_window(b, since, until)
        )
        return committed + pending

    def find_booking(self, event_id: int, idempotency_key: str) -> Optional[Booking]:
        self._ensure_open()
        for booking in self._bookings:
            if booking.event_id == event_id and booking.idempotency_key == idempotency_key:
                return booking
        return self._store._find_committed(event_id, idempotency_key)

    def insert_booking(
        self,
        event_id: int,
        quantity: int,
        unit_price: int,
        booker_contact: str,
        idempotency_key: Optional[str] = None,
    ) -> Booking:
        self._ensure_locked(event_id)
        booking = Booking(
            id=self._store._next_booking_id(),
            event_id=event_id,
            quantity=quantity,
            unit_price=unit_price,
            price_paid=unit_price * quantity,
            booker_contact=booker_contact,
            committed_at=self._store._clock(),
            idempotency_key=idempotency_key,
        )
        self._bookings.append(booking)
        return booking

    def increment_reserved(self, event_id: int, delta: int) -> None:
        self._ensure_locked(event_id)
        self._reserved_delta[event_id] = self._reserved_delta.get(event_id, 0) + delta

    def set_current_price(self, event_id: int, price: int) -> None:
        self._ensure_locked(event_id)
        self._prices[event_id] = price

    def commit(self) -> None:
        self._ensure_open()
        try:
            self._store._apply(self._bookings, self._reserved_delta, self._prices)
        finally:
            self._close()

    def rollback(self) -> None:
        if not self._closed:
            self._close()

    def _snapshot(self, event_id: int) -> Event:
        event = self._store._committed_event(event_id)
        update: Dict[str, int] = {}
        if event_id in self._reserved_delta:
            update["reserved_count"] = event.reserved_count + self._reserved_delta[event_id]
        if event_id in self._prices:
            update["current_price"] = self._prices[event_id]
        return event.model_copy(update=update) if update else event

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("transaction is already closed")

    def _ensure_locked(self, event_id: int) -> None:
        self._ensure_open()
        if event_id not in self._held:
            raise RuntimeError(f"event {event_id} must be locked before it is written")

    def _close(self) -> None:
        self._closed = True
        self._bookings = []
        self._reserved_delta = {}
        self._prices = {}
        held, self._held = self._held, {}
        for lock in held.values():
            lock.release()


class InMemoryStore(BookingStore):
    """Thread-safe dict-backed store with per-event locks."""

    def __init__(
        self,
        lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.lock_timeout_ms = lock_timeout_ms
        self._clock = clock
        self._state_lock = threading.Lock()
        self._events: Dict[int, Event] = {}
        self._bookings: Dict[int, List[Booking]] = {}
        self._event_locks: Dict[int, threading.Lock] = {}
        self._event_ids = itertools.count(1)
        self._booking_ids = itertools.count(1)

    def create_event(self, new_event: NewEvent) -> Event:
        with self._state_lock:
            event = Event(
                id=next(self._event_ids),
                reserved_count=0,
                current_price=new_event.base_price,
                created_at=self._clock(),
                **new_event.model_dump(),
            )
            self._events[event.id] = event
            self._bookings[event.id] = []
            self._event_locks[event.id] = threading.Lock()
        return event

    def get_event(self, event_id: int) -> Optional[Event]:
        with self._state_lock:
            return self._events.get(event_id)

    def list_events(self) -> list[Event]:
        with self._state_lock:
            events = list(self._events.values())
        return sorted(events, key=lambda e: (e.scheduled_at, e.id))

    def list_bookings(self, event_id: int) -> list[Booking]:
        with self._state_lock:
            return list(self._bookings.get(event_id, []))

    def count_bookings_since(
        self, event_id: int, since: datetime, until: Optional[datetime] = None
    ) -> int:
        with self._state_lock:
            bookings = self._bookings.get(event_id, [])
            return sum(1 for b in bookings if _in_window(b, since, until))

    def try_update_current_price(
        self, event_id: int, price: int, expected_reserved: Optional[int] = None
    ) -> bool:
        lock = self._lock_for(event_id)
        if not lock.acquire(blocking=False):
            return False
        try:
            with self._state_lock:
                event = self._events[event_id]
                if expected_reserved is not None and event.reserved_count != expected_reserved:
                    return False
                self._events[event_id] = event.model_copy(update={"current_price": price})
        finally:
            lock.release()
        return True

    def begin(self, lock_timeout_ms: Optional[int] = None) -> InMemoryTransaction:
        timeout = self.lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        return InMemoryTransaction(self, timeout)

    # Internal hooks used by InMemoryTransaction

    def _lock_for(self, event_id: int) -> threading.Lock:
        with self._state_lock:
            if event_id not in self._events:
                raise EventNotFoundError(event_id)
            return self._event_locks[event_id]

    def _committed_event(self, event_id: int) -> Event:
        with self._state_lock:
            return self._events[event_id]

    def _find_committed(self, event_id: int, idempotency_key: str) -> Optional[Booking]:
        with self._state_lock:
            for booking in self._bookings.get(event_id, []):
                if booking.idempotency_key == idempotency_key:
                    return booking
        return None

    def _next_booking_id(self) -> int:
        with self._state_lock:
            return next(self._booking_ids)

    def _apply(
        self,
        bookings: List[Booking],
        reserved_delta: Dict[int, int],
        prices: Dict[int, int],
    ) -> None:
        with self._state_lock:
            for booking in bookings:
                self._bookings[booking.event_id].append(booking)
            for event_id in set(reserved_delta) | set(prices):
                event = self._events[event_id]
                update: Dict[str, int] = {}
                if event_id in reserved_delta:
                    update["reserved_count"] = event.reserved_count + reserved_delta[event_id]
                if event_id in prices:
                    update["current_price"] = prices[event_id]
                self._events[event_id] = event.model_copy(update=update)


__all__ = ["InMemoryStore", "InMemoryTransaction"]
