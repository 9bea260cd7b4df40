"""
Pricing package: rule evaluators, the calculator that combines them, and the
coordinator that feeds the calculator from the store.
"""

from dynamic_ticketing.pricing.calculator import (
    PricingCalculator,
    format_price,
    price_change_percent,
)
from dynamic_ticketing.pricing.coordinator import PricingCoordinator, build_breakdown
from dynamic_ticketing.pricing.rules import (
    RuleKind,
    demand_velocity_ratio,
    inventory_scarcity_ratio,
    time_urgency_ratio,
)

__all__ = [
    "PricingCalculator",
    "PricingCoordinator",
    "RuleKind",
    "build_breakdown",
    "demand_velocity_ratio",
    "format_price",
    "inventory_scarcity_ratio",
    "price_change_percent",
    "time_urgency_ratio",
]
