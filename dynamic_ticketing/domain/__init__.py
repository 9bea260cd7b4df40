"""
Domain package for the dynamic ticketing core.

Exports the domain models and the error taxonomy shared by the pricing engine,
the booking coordinator and the stores. Keep this package focused on data
definitions and validation concerns.
"""

from dynamic_ticketing.domain.errors import (
    DomainError,
    ErrorCode,
    EventNotFoundError,
    InsufficientInventoryError,
    InvalidConfigurationError,
    LockTimeoutError,
    TransientStorageError,
)
from dynamic_ticketing.domain.models import (
    Booking,
    DemandRules,
    Event,
    InventoryRules,
    NewEvent,
    PriceBreakdown,
    PriceCalculationResult,
    PricingConfig,
    RuleAdjustments,
    TimeRules,
)

__all__ = [
    "Booking",
    "DemandRules",
    "Event",
    "InventoryRules",
    "NewEvent",
    "PriceBreakdown",
    "PriceCalculationResult",
    "PricingConfig",
    "RuleAdjustments",
    "TimeRules",
    "DomainError",
    "ErrorCode",
    "EventNotFoundError",
    "InsufficientInventoryError",
    "InvalidConfigurationError",
    "LockTimeoutError",
    "TransientStorageError",
]
