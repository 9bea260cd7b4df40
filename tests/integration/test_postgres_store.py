"""
Integration tests for the PostgreSQL store.

These tests run against a real PostgreSQL instance and verify that:
1. Reservations are serialized by the event row lock
2. The capacity invariant holds under concurrent load
3. Lock waits are bounded and failed units of work roll back
4. The advisory price refresh never blocks behind a reservation

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from dynamic_ticketing.booking import BookingCoordinator
from dynamic_ticketing.domain import (
    EventNotFoundError,
    InsufficientInventoryError,
    LockTimeoutError,
    NewEvent,
    TransientStorageError,
)
from dynamic_ticketing.pricing import PricingCoordinator
from dynamic_ticketing.simulation import SimulationConfig, run_contention
from dynamic_ticketing.stores.postgres import PostgresStore

# Test configuration constants
DEFAULT_POOL_MAX = 10
SHORT_LOCK_TIMEOUT_MS = 100
BASE_PRICE = 10_000

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def store(test_dsn: str, clean_tables) -> Generator[PostgresStore, None, None]:
    pg_store = PostgresStore(dsn_override=test_dsn, lock_timeout_ms=2_000)
    try:
        yield pg_store
    finally:
        pg_store.close()


def _new_event(capacity: int, until: timedelta = timedelta(days=40)) -> NewEvent:
    return NewEvent(
        name="Integration",
        venue="Test Hall",
        scheduled_at=datetime.now(timezone.utc) + until,
        total_capacity=capacity,
        base_price=BASE_PRICE,
        price_floor=BASE_PRICE,
        price_ceiling=BASE_PRICE * 3,
    )


class TestEventPersistence:
    """Round-trip of events through the events table."""

    def test_create_and_read(self, store) -> None:
        created = store.create_event(_new_event(capacity=25))

        loaded = store.get_event(created.id)

        assert loaded == created
        assert loaded.reserved_count == 0
        assert loaded.current_price == BASE_PRICE
        assert loaded.pricing_config.inventory_rules.thresholds == {10: 0.5, 20: 0.25, 50: 0.1}

    def test_missing_event(self, store) -> None:
        assert store.get_event(999_999) is None


class TestReservations:
    """Booking coordinator on top of row locks."""

    def test_reserve_and_list(self, store) -> None:
        event = store.create_event(_new_event(capacity=5))
        coordinator = BookingCoordinator(store)

        booking = coordinator.reserve(event.id, 2, "fan@example.com")

        assert booking.price_paid == 2 * booking.unit_price
        assert store.get_event(event.id).reserved_count == 2
        assert store.list_bookings(event.id) == [booking]

    def test_committed_price_is_never_rewritten(self, store) -> None:
        event = store.create_event(_new_event(capacity=10))
        coordinator = BookingCoordinator(store)
        first = coordinator.reserve(event.id, 1, "fan@example.com")

        for i in range(8):
            coordinator.reserve(event.id, 1, f"user{i}@example.com")
        refreshed = PricingCoordinator(store).refresh_and_persist(event.id)

        assert refreshed > BASE_PRICE
        assert store.get_event(event.id).current_price == refreshed
        stored = store.list_bookings(event.id)[0]
        assert stored == first
        assert stored.unit_price == BASE_PRICE
        assert stored.price_paid == BASE_PRICE

    def test_idempotent_retry(self, store) -> None:
        event = store.create_event(_new_event(capacity=5))
        coordinator = BookingCoordinator(store)

        first = coordinator.reserve(event.id, 1, "fan@example.com", idempotency_key="k-1")
        again = coordinator.reserve(event.id, 1, "fan@example.com", idempotency_key="k-1")

        assert again.id == first.id
        assert store.get_event(event.id).reserved_count == 1

    def test_unknown_event(self, store) -> None:
        with pytest.raises(EventNotFoundError):
            BookingCoordinator(store).reserve(999_999, 1, "fan@example.com")

    def test_five_buyers_three_tickets(self, store) -> None:
        event = store.create_event(_new_event(capacity=3))
        coordinator = BookingCoordinator(store)
        barrier = threading.Barrier(5)

        def _attempt(i: int):
            barrier.wait()
            try:
                return coordinator.reserve(event.id, 1, f"user{i}@example.com")
            except InsufficientInventoryError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=5) as pool:
            results = list(pool.map(_attempt, range(5)))

        accepted = [r for r in results if not isinstance(r, Exception)]
        assert len(accepted) == 3
        assert store.get_event(event.id).reserved_count == 3

    def test_contention_run_keeps_invariant(self, store) -> None:
        summary = run_contention(
            store, SimulationConfig(requests=20, capacity=7, concurrency=DEFAULT_POOL_MAX - 2)
        )

        assert summary["accepted"] == 7
        assert summary["rejected"] == 13
        assert summary["invariant_holds"] is True


class TestLocking:
    """Lock timeout and the non-blocking advisory refresh."""

    def test_lock_timeout(self, store) -> None:
        event = store.create_event(_new_event(capacity=5))
        holder = store.begin()
        holder.lock_event(event.id)
        try:
            with pytest.raises(LockTimeoutError):
                BookingCoordinator(store).reserve(
                    event.id, 1, "fan@example.com", lock_timeout_ms=SHORT_LOCK_TIMEOUT_MS
                )
        finally:
            holder.rollback()

        assert store.get_event(event.id).reserved_count == 0

    def test_refresh_skips_locked_row(self, store) -> None:
        event = store.create_event(_new_event(capacity=5, until=timedelta(hours=3)))
        pricing = PricingCoordinator(store)
        holder = store.begin()
        holder.lock_event(event.id)
        try:
            price = pricing.refresh_and_persist(event.id)
        finally:
            holder.rollback()

        assert price > BASE_PRICE
        assert store.get_event(event.id).current_price == BASE_PRICE

        assert pricing.refresh_and_persist(event.id) == price
        assert store.get_event(event.id).current_price == price

    def test_refresh_skips_when_reserved_count_moved(self, store) -> None:
        event = store.create_event(_new_event(capacity=5))
        BookingCoordinator(store).reserve(event.id, 2, "fan@example.com")

        assert not store.try_update_current_price(event.id, 11_000, expected_reserved=0)
        assert store.get_event(event.id).current_price == BASE_PRICE
        assert store.try_update_current_price(event.id, 12_000, expected_reserved=2)
        assert store.get_event(event.id).current_price == 12_000

    def test_failed_unit_of_work_rolls_back(self, store) -> None:
        event = store.create_event(_new_event(capacity=5))

        with pytest.raises(TransientStorageError):
            with store.transaction() as tx:
                tx.lock_event(event.id)
                tx.insert_booking(event.id, 1, BASE_PRICE, "fan@example.com")
                # Violates the reserved_count <= total_capacity check constraint.
                tx.increment_reserved(event.id, 10)

        assert store.get_event(event.id).reserved_count == 0
        assert store.list_bookings(event.id) == []
