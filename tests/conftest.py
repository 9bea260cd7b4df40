"""
Pytest configuration for the dynamic ticketing core.

Provides fixtures for:
- A fixed clock and event factories for pure pricing tests
- In-memory stores and services for unit tests
- Database connection management for integration tests
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator

import psycopg
import pytest

from dynamic_ticketing.booking import BookingCoordinator
from dynamic_ticketing.catalog import EventCatalog
from dynamic_ticketing.config import Settings, get_settings
from dynamic_ticketing.domain import Event, NewEvent
from dynamic_ticketing.pricing import PricingCoordinator
from dynamic_ticketing.stores import InMemoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
DEFAULT_BASE_PRICE = 10_000
DEFAULT_CAPACITY = 100


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """
    Build an Event snapshot directly, without a store.

    ``until`` is the time left before the event starts, measured from NOW.
    """

    def _make(until: timedelta = timedelta(days=40), **overrides: Any) -> Event:
        fields: dict[str, Any] = {
            "id": 1,
            "name": "Concert",
            "venue": "Arena",
            "scheduled_at": NOW + until,
            "total_capacity": DEFAULT_CAPACITY,
            "reserved_count": 0,
            "base_price": DEFAULT_BASE_PRICE,
            "price_floor": DEFAULT_BASE_PRICE,
            "price_ceiling": DEFAULT_BASE_PRICE * 2,
            "current_price": DEFAULT_BASE_PRICE,
            "created_at": NOW - timedelta(days=60),
        }
        fields.update(overrides)
        return Event(**fields)

    return _make


@pytest.fixture
def memory_store(clock: FrozenClock) -> InMemoryStore:
    return InMemoryStore(lock_timeout_ms=2_000, clock=clock)


@pytest.fixture
def new_event() -> Callable[..., NewEvent]:
    def _make(until: timedelta = timedelta(days=40), **overrides: Any) -> NewEvent:
        fields: dict[str, Any] = {
            "name": "Concert",
            "venue": "Arena",
            "scheduled_at": NOW + until,
            "total_capacity": DEFAULT_CAPACITY,
            "base_price": DEFAULT_BASE_PRICE,
            "price_floor": DEFAULT_BASE_PRICE,
            "price_ceiling": DEFAULT_BASE_PRICE * 2,
        }
        fields.update(overrides)
        return NewEvent(**fields)

    return _make


@pytest.fixture
def pricing(memory_store: InMemoryStore, clock: FrozenClock) -> PricingCoordinator:
    return PricingCoordinator(memory_store, clock=clock, currency_symbol="$")


@pytest.fixture
def catalog(memory_store: InMemoryStore, pricing: PricingCoordinator) -> EventCatalog:
    return EventCatalog(memory_store, pricing)


@pytest.fixture
def booking(memory_store: InMemoryStore, clock: FrozenClock) -> BookingCoordinator:
    return BookingCoordinator(memory_store, clock=clock)


@pytest.fixture
def fresh_settings() -> Generator[None, None, None]:
    """Clear the cached Settings so env overrides made by the test take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "dynamic_ticketing"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection, test_dsn: str) -> bool:
    """
    Ensure the events and bookings tables exist.
    """
    from dynamic_ticketing.stores.postgres import apply_schema

    apply_schema(test_dsn)
    return True


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty bookings and events before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.bookings, public.events RESTART IDENTITY CASCADE;")
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.bookings, public.events RESTART IDENTITY CASCADE;")
    db_connection.commit()
