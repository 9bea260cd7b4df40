"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. A ``BookingStore`` owns the
committed state; a ``StoreTransaction`` is one all-or-nothing unit of work that
holds exclusive per-event locks until it commits or rolls back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from dynamic_ticketing.domain import Booking, Event, NewEvent


class StoreTransaction(ABC):
    """A single unit of work against the store of record."""

    @abstractmethod
    def lock_event(self, event_id: int) -> Event:
        """Take the exclusive lock for an event and return its locked snapshot.

        Raises:
            EventNotFoundError: If the event does not exist.
            LockTimeoutError: If the lock is not granted within the lock timeout.
        """
        ...

    @abstractmethod
    def count_bookings_since(
        self, event_id: int, since: datetime, until: Optional[datetime] = None
    ) -> int:
        """Count bookings with ``since <= committed_at <= until`` visible to this unit."""
        ...

    @abstractmethod
    def find_booking(self, event_id: int, idempotency_key: str) -> Optional[Booking]:
        """Return the booking previously stored under an idempotency key, if any."""
        ...

    @abstractmethod
    def insert_booking(
        self,
        event_id: int,
        quantity: int,
        unit_price: int,
        booker_contact: str,
        idempotency_key: Optional[str] = None,
    ) -> Booking:
        """Insert a booking row. The event must be locked by this unit."""
        ...

    @abstractmethod
    def increment_reserved(self, event_id: int, delta: int) -> None:
        """Add ``delta`` to the event's reserved count. The event must be locked."""
        ...

    @abstractmethod
    def set_current_price(self, event_id: int, price: int) -> None:
        """Overwrite the cached current price. The event must be locked."""
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Discard every write and release every lock. Safe to call twice."""
        ...


class BookingStore(ABC):
    """Interface for event and booking persistence operations."""

    @abstractmethod
    def create_event(self, new_event: NewEvent) -> Event:
        """Persist a validated event with ``reserved_count = 0`` and ``current_price = base_price``."""
        ...

    @abstractmethod
    def get_event(self, event_id: int) -> Optional[Event]:
        """Return the committed snapshot of an event, or None if not found."""
        ...

    @abstractmethod
    def list_events(self) -> list[Event]:
        """Return all events ordered by scheduled_at ascending."""
        ...

    @abstractmethod
    def list_bookings(self, event_id: int) -> list[Booking]:
        """Return committed bookings for an event ordered by commit order."""
        ...

    @abstractmethod
    def count_bookings_since(
        self, event_id: int, since: datetime, until: Optional[datetime] = None
    ) -> int:
        """Read-only count of committed bookings with ``since <= committed_at <= until``."""
        ...

    @abstractmethod
    def try_update_current_price(
        self, event_id: int, price: int, expected_reserved: Optional[int] = None
    ) -> bool:
        """Write the cached price unless the event is locked; never waits.

        With ``expected_reserved`` the write also requires ``reserved_count`` to
        still equal it, so a price computed from an older snapshot never replaces
        one committed by a later reservation.

        Returns True when written, False when skipped.
        """
        ...

    @abstractmethod
    def begin(self, lock_timeout_ms: Optional[int] = None) -> StoreTransaction:
        """Open a unit of work. Prefer ``transaction()``."""
        ...

    @contextmanager
    def transaction(self, lock_timeout_ms: Optional[int] = None) -> Iterator[StoreTransaction]:
        """Run a unit of work: commit on clean exit, roll back on any exception."""
        tx = self.begin(lock_timeout_ms)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        tx.commit()

    def close(self) -> None:
        """Release pooled resources held by the store."""


__all__ = ["BookingStore", "StoreTransaction"]
