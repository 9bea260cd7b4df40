"""
Dynamic ticketing - concurrency-safe booking with rule-based dynamic pricing.

This package provides the core of a ticket sales system:

- An atomic booking coordinator that serializes reservations per event
- A pricing rule engine (time urgency, demand velocity, inventory scarcity)
- PostgreSQL and in-memory stores behind one interface
- A contention simulator that checks the capacity invariant under load
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from dynamic_ticketing.booking import BookingCoordinator
from dynamic_ticketing.catalog import EventCatalog
from dynamic_ticketing.config import Settings, get_settings
from dynamic_ticketing.domain import (
    Booking,
    DomainError,
    Event,
    EventNotFoundError,
    InsufficientInventoryError,
    InvalidConfigurationError,
    LockTimeoutError,
    NewEvent,
    PriceBreakdown,
    PriceCalculationResult,
    PricingConfig,
    TransientStorageError,
)
from dynamic_ticketing.pricing import PricingCalculator, PricingCoordinator
from dynamic_ticketing.stores import BookingStore, InMemoryStore, create_store
from dynamic_ticketing.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Services
    "BookingCoordinator",
    "EventCatalog",
    "PricingCalculator",
    "PricingCoordinator",
    # Stores
    "BookingStore",
    "InMemoryStore",
    "create_store",
    # Domain
    "Booking",
    "Event",
    "NewEvent",
    "PriceBreakdown",
    "PriceCalculationResult",
    "PricingConfig",
    # Errors
    "DomainError",
    "EventNotFoundError",
    "InsufficientInventoryError",
    "InvalidConfigurationError",
    "LockTimeoutError",
    "TransientStorageError",
    # Logging
    "configure_logging",
    "get_logger",
]
