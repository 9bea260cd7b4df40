"""
Domain models for the dynamic ticketing core.

Events, bookings and the pricing configuration attached to each event, plus the
ephemeral price calculation result and its human-readable breakdown. All money
amounts are integers in minor currency units.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_FROZEN = {"frozen": True, "populate_by_name": True}
# Ratios and weights feed Decimal arithmetic and must stay finite.
_RULES = {**_FROZEN, "allow_inf_nan": False}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimeRules(BaseModel):
    """Urgency ratios by time remaining until the event starts."""

    hours_to_24: float = Field(0.50, ge=0)
    days_1_to_7: float = Field(0.20, ge=0)
    days_7_to_30: float = Field(0.10, ge=0)
    days_30_plus: float = Field(0.0, ge=0)

    model_config = _RULES

    @model_validator(mode="after")
    def check_urgency_order(self) -> "TimeRules":
        tiers = [self.hours_to_24, self.days_1_to_7, self.days_7_to_30, self.days_30_plus]
        if any(a < b for a, b in zip(tiers, tiers[1:])):
            raise ValueError("time rule ratios must not increase as the event gets further away")
        return self


class DemandRules(BaseModel):
    """Step increase applied once booking velocity reaches the threshold."""

    threshold: int = Field(10, ge=0, description="Bookings within the trailing window.")
    increase: float = Field(0.15, ge=0)

    model_config = _RULES


class InventoryRules(BaseModel):
    """
    Scarcity ratios keyed by percentage-remaining breakpoints.

    A breakpoint ``b`` applies when ``pct_remaining < b``; the smallest matching
    breakpoint wins. ``sold_out`` covers ``remaining <= 0`` and ``ample`` covers
    everything above the largest breakpoint.
    """

    sold_out: float = Field(0.50, ge=0)
    thresholds: Dict[int, float] = Field(default_factory=lambda: {10: 0.50, 20: 0.25, 50: 0.10})
    ample: float = Field(0.0, ge=0)

    model_config = _RULES

    @model_validator(mode="after")
    def check_scarcity_order(self) -> "InventoryRules":
        for breakpoint, ratio in self.thresholds.items():
            if not 0 < breakpoint <= 100:
                raise ValueError(f"inventory breakpoint {breakpoint} must be within (0, 100]")
            if ratio < 0:
                raise ValueError("inventory ratios must be non-negative")
        ordered = [self.thresholds[b] for b in sorted(self.thresholds)]
        ladder = [self.sold_out, *ordered, self.ample]
        if any(a < b for a, b in zip(ladder, ladder[1:])):
            raise ValueError("inventory ratios must not increase as more inventory remains")
        return self


class PricingConfig(BaseModel):
    """Per-event weights (linear coefficients) and per-rule thresholds."""

    time_weight: float = Field(0.33, ge=0)
    demand_weight: float = Field(0.33, ge=0)
    inventory_weight: float = Field(0.34, ge=0)
    time_rules: TimeRules = Field(default_factory=TimeRules)
    demand_rules: DemandRules = Field(default_factory=DemandRules)
    inventory_rules: InventoryRules = Field(default_factory=InventoryRules)

    model_config = _RULES


class NewEvent(BaseModel):
    """
    Validated input for creating an event.

    Creation is the only place capacity and price bounds are checked; once an
    Event exists these invariants hold for its lifetime.
    """

    name: str = Field(..., min_length=1)
    venue: str = Field(..., min_length=1)
    description: Optional[str] = None
    scheduled_at: datetime
    total_capacity: int = Field(..., gt=0)
    base_price: int = Field(..., ge=0)
    price_floor: int = Field(..., ge=0)
    price_ceiling: int = Field(..., ge=0)
    pricing_config: PricingConfig = Field(default_factory=PricingConfig)

    model_config = _FROZEN

    @field_validator("scheduled_at")
    @classmethod
    def normalise_scheduled_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @model_validator(mode="after")
    def check_price_bounds(self) -> "NewEvent":
        if self.price_floor > self.price_ceiling:
            raise ValueError("price floor cannot be greater than price ceiling")
        if self.base_price < self.price_floor:
            raise ValueError("base price cannot be less than price floor")
        if self.base_price > self.price_ceiling:
            raise ValueError("base price cannot be greater than price ceiling")
        return self


class Event(BaseModel):
    """Snapshot of an event row as read from the store of record."""

    id: int
    name: str
    venue: str
    description: Optional[str] = None
    scheduled_at: datetime
    total_capacity: int
    reserved_count: int = 0
    base_price: int
    price_floor: int
    price_ceiling: int
    current_price: int
    pricing_config: PricingConfig = Field(default_factory=PricingConfig)
    created_at: datetime

    model_config = _FROZEN

    @field_validator("scheduled_at", "created_at")
    @classmethod
    def normalise_timestamps(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @property
    def remaining(self) -> int:
        return self.total_capacity - self.reserved_count


class Booking(BaseModel):
    """An immutable record of a committed purchase at a snapshotted price."""

    id: int
    event_id: int
    quantity: int = Field(..., ge=1)
    unit_price: int = Field(..., ge=0)
    price_paid: int = Field(..., ge=0)
    booker_contact: str
    committed_at: datetime
    idempotency_key: Optional[str] = None

    model_config = _FROZEN

    @field_validator("committed_at")
    @classmethod
    def normalise_committed_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)


class RuleAdjustments(BaseModel):
    """One value per pricing rule."""

    time: float
    demand: float
    inventory: float

    model_config = _FROZEN


class PriceCalculationResult(BaseModel):
    """
    Derived, never persisted. Callers read the weighted adjustments and clamp
    flags from here instead of recomputing them.
    """

    base_price: int
    raw_price: int = Field(..., description="Rounded price before clamping.")
    current_price: int
    adjustments: RuleAdjustments
    weighted: RuleAdjustments
    total_adjustment: float
    capped_by_floor: bool = False
    capped_by_ceiling: bool = False
    recent_booking_count: int = 0
    remaining: int = 0
    calculated_at: datetime

    model_config = _FROZEN


class PriceBreakdown(BaseModel):
    """Human-readable explanation of an event's current price."""

    event_id: int
    base_price: str
    current_price: str
    price_change: str
    impacts: Dict[str, str]
    capped_by_floor: bool
    capped_by_ceiling: bool
    calculation: PriceCalculationResult

    model_config = _FROZEN


__all__ = [
    "utc_now",
    "TimeRules",
    "DemandRules",
    "InventoryRules",
    "PricingConfig",
    "NewEvent",
    "Event",
    "Booking",
    "RuleAdjustments",
    "PriceCalculationResult",
    "PriceBreakdown",
]
