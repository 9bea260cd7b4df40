"""
Stores package for the dynamic ticketing core.

Re-exports the store interfaces and implementations, and resolves the backend
named in settings.
"""

from __future__ import annotations

from typing import Optional

from dynamic_ticketing.config import Settings, get_settings
from dynamic_ticketing.stores.interfaces import BookingStore, StoreTransaction
from dynamic_ticketing.stores.memory import InMemoryStore, InMemoryTransaction


def create_store(settings: Optional[Settings] = None) -> BookingStore:
    """Build the store selected by ``STORE_BACKEND``."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return InMemoryStore(lock_timeout_ms=settings.lock_timeout_ms)
    if settings.store_backend == "postgres":
        from dynamic_ticketing.stores.postgres import PostgresStore

        return PostgresStore(lock_timeout_ms=settings.lock_timeout_ms)
    raise ValueError(f"Unknown store backend '{settings.store_backend}'")


__all__ = [
    "BookingStore",
    "StoreTransaction",
    "InMemoryStore",
    "InMemoryTransaction",
    "create_store",
]
