"""
PostgreSQL implementation of the BookingStore.

The per-event lock is the event row itself: ``SELECT ... FOR UPDATE`` inside the
unit of work, bounded by ``SET LOCAL lock_timeout``. The advisory price refresh
uses ``FOR UPDATE SKIP LOCKED`` so it never queues behind a reservation.

Every psycopg failure is translated into the domain taxonomy at this boundary.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from importlib import resources
from typing import Iterator, Optional, Set

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool, PoolTimeout

from dynamic_ticketing.config import get_settings
from dynamic_ticketing.domain import (
    Booking,
    Event,
    EventNotFoundError,
    LockTimeoutError,
    NewEvent,
    TransientStorageError,
)
from dynamic_ticketing.infrastructure.db_factory import (
    apply_lock_timeout,
    create_pool,
    get_sync_connection,
    get_sync_pool,
)
from dynamic_ticketing.stores.interfaces import BookingStore, StoreTransaction
from dynamic_ticketing.utils.logging import get_logger

log = get_logger(__name__)

_COUNT_SQL = """
    SELECT count(*) AS n FROM public.bookings
    WHERE event_id = %(event_id)s
      AND committed_at >= %(since)s
      AND (%(until)s::timestamptz IS NULL OR committed_at <= %(until)s::timestamptz)
"""


@contextmanager
def _storage_errors(event_id: Optional[int] = None, lock_timeout_ms: int = 0) -> Iterator[None]:
    try:
        yield
    except psycopg.errors.LockNotAvailable as exc:
        raise LockTimeoutError(event_id or 0, lock_timeout_ms) from exc
    except PoolTimeout as exc:
        raise TransientStorageError("Timed out waiting for a database connection") from exc
    except psycopg.Error as exc:
        raise TransientStorageError(f"Storage failure: {type(exc).__name__}") from exc


def load_schema_sql() -> str:
    return resources.files("dynamic_ticketing.stores").joinpath("schema.sql").read_text(
        encoding="utf-8"
    )


def apply_schema(dsn: Optional[str] = None) -> None:
    """Create the events and bookings tables if they do not exist."""
    with _storage_errors():
        with get_sync_connection(dsn) as conn:
            conn.execute(load_schema_sql())
            conn.commit()


class PostgresTransaction(StoreTransaction):
    """One database transaction on a connection borrowed from the pool."""

    def __init__(self, pool: ConnectionPool, lock_timeout_ms: int) -> None:
        self._pool = pool
        self._lock_timeout_ms = lock_timeout_ms
        self._locked: Set[int] = set()
        self._closed = False
        with _storage_errors():
            self._conn = pool.getconn()
        try:
            with _storage_errors(), self._conn.cursor() as cur:
                apply_lock_timeout(cur, lock_timeout_ms)
        except BaseException:
            self.rollback()
            raise

    def lock_event(self, event_id: int) -> Event:
        self._ensure_open()
        with _storage_errors(event_id, self._lock_timeout_ms):
            with self._conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM public.events WHERE id = %s FOR UPDATE", (event_id,))
                row = cur.fetchone()
        if row is None:
            raise EventNotFoundError(event_id)
        self._locked.add(event_id)
        return Event.model_validate(row)

    def count_bookings_since(
        self, event_id: int, since: datetime, until: Optional[datetime] = None
    ) -> int:
        self._ensure_open()
        with _storage_errors(), self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(_COUNT_SQL, {"event_id": event_id, "since": since, "until": until})
            return int(cur.fetchone()["n"])

    def find_booking(self, event_id: int, idempotency_key: str) -> Optional[Booking]:
        self._ensure_open()
        with _storage_errors(), self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT * FROM public.bookings WHERE event_id = %s AND idempotency_key = %s",
                (event_id, idempotency_key),
            )
            row = cur.fetchone()
        return Booking.model_validate(row) if row else None

    def insert_booking(
        self,
        event_id: int,
        quantity: int,
        unit_price: int,
        booker_contact: str,
        idempotency_key: Optional[str] = None,
    ) -> Booking:
        self._ensure_locked(event_id)
        with _storage_errors(), self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                INSERT INTO public.bookings
                    (event_id, quantity, unit_price, price_paid, booker_contact, idempotency_key)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    event_id,
                    quantity,
                    unit_price,
                    unit_price * quantity,
                    booker_contact,
                    idempotency_key,
                ),
            )
            return Booking.model_validate(cur.fetchone())

    def increment_reserved(self, event_id: int, delta: int) -> None:
        self._ensure_locked(event_id)
        with _storage_errors():
            self._conn.execute(
                "UPDATE public.events SET reserved_count = reserved_count + %s WHERE id = %s",
                (delta, event_id),
            )

    def set_current_price(self, event_id: int, price: int) -> None:
        self._ensure_locked(event_id)
        with _storage_errors():
            self._conn.execute(
                "UPDATE public.events SET current_price = %s WHERE id = %s", (price, event_id)
            )

    def commit(self) -> None:
        self._ensure_open()
        try:
            with _storage_errors():
                self._conn.commit()
        finally:
            self._release()

    def rollback(self) -> None:
        if self._closed:
            return
        try:
            self._conn.rollback()
        except psycopg.Error:
            # The pool discards connections left in a broken state.
            log.warning("Rollback failed; returning connection to pool", exc_info=True)
        finally:
            self._release()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("transaction is already closed")

    def _ensure_locked(self, event_id: int) -> None:
        self._ensure_open()
        if event_id not in self._locked:
            raise RuntimeError(f"event {event_id} must be locked before it is written")

    def _release(self) -> None:
        self._closed = True
        self._locked.clear()
        self._pool.putconn(self._conn)


class PostgresStore(BookingStore):
    """
    PostgreSQL-backed store of record using a psycopg ConnectionPool.

    Uses the shared pool from ``PoolManager`` unless a pool or DSN override is
    supplied; a pool created from ``dsn_override`` is owned and closed here.
    """

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        dsn_override: Optional[str] = None,
        lock_timeout_ms: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.lock_timeout_ms = (
            lock_timeout_ms if lock_timeout_ms is not None else settings.lock_timeout_ms
        )
        self._owns_pool = pool is None and dsn_override is not None
        if pool is not None:
            self._pool = pool
        elif dsn_override:
            self._pool = create_pool(dsn_override)
        else:
            self._pool = get_sync_pool()

    def create_event(self, new_event: NewEvent) -> Event:
        with _storage_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO public.events
                        (name, venue, description, scheduled_at, total_capacity,
                         reserved_count, base_price, price_floor, price_ceiling,
                         current_price, pricing_config)
                    VALUES (%s, %s, %s, %s, %s, 0, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        new_event.name,
                        new_event.venue,
                        new_event.description,
                        new_event.scheduled_at,
                        new_event.total_capacity,
                        new_event.base_price,
                        new_event.price_floor,
                        new_event.price_ceiling,
                        new_event.base_price,
                        Jsonb(new_event.pricing_config.model_dump(mode="json")),
                    ),
                )
                return Event.model_validate(cur.fetchone())

    def get_event(self, event_id: int) -> Optional[Event]:
        with _storage_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM public.events WHERE id = %s", (event_id,))
                row = cur.fetchone()
        return Event.model_validate(row) if row else None

    def list_events(self) -> list[Event]:
        with _storage_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM public.events ORDER BY scheduled_at, id")
                rows = cur.fetchall()
        return [Event.model_validate(row) for row in rows]

    def list_bookings(self, event_id: int) -> list[Booking]:
        with _storage_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT * FROM public.bookings WHERE event_id = %s ORDER BY id", (event_id,)
                )
                rows = cur.fetchall()
        return [Booking.model_validate(row) for row in rows]

    def count_bookings_since(
        self, event_id: int, since: datetime, until: Optional[datetime] = None
    ) -> int:
        with _storage_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_COUNT_SQL, {"event_id": event_id, "since": since, "until": until})
                return int(cur.fetchone()["n"])

    def try_update_current_price(
        self, event_id: int, price: int, expected_reserved: Optional[int] = None
    ) -> bool:
        with _storage_errors(event_id), self._pool.connection() as conn:
            cur = conn.execute(
                """
                UPDATE public.events SET current_price = %(price)s
                WHERE id = (
                    SELECT id FROM public.events
                    WHERE id = %(event_id)s
                      AND (%(expected)s::integer IS NULL OR reserved_count = %(expected)s::integer)
                    FOR UPDATE SKIP LOCKED
                )
                """,
                {"price": price, "event_id": event_id, "expected": expected_reserved},
            )
            return cur.rowcount == 1

    def begin(self, lock_timeout_ms: Optional[int] = None) -> PostgresTransaction:
        timeout = self.lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        return PostgresTransaction(self._pool, timeout)

    def close(self) -> None:
        if self._owns_pool:
            self._pool.close()


__all__ = ["PostgresStore", "PostgresTransaction", "apply_schema", "load_schema_sql"]
