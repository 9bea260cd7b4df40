"""
Pricing calculator.

Combines the rule ratios with the event's weights and clamps the result:

    current_price = clamp(round(base_price * (1 + sum(ratio_i * weight_i))), floor, ceiling)

Rounding is half away from zero, computed with ``Decimal`` so the same inputs
always produce the same integer price. The weighted sum is also accumulated in
``Decimal``: a finite total of any magnitude still clamps to the ceiling.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence, Tuple

from dynamic_ticketing.domain.models import Event, PriceCalculationResult, RuleAdjustments
from dynamic_ticketing.pricing.rules import RuleKind, evaluate

WeightedRule = Tuple[RuleKind, str]

DEFAULT_RULES: Tuple[WeightedRule, ...] = (
    (RuleKind.TIME_URGENCY, "time_weight"),
    (RuleKind.DEMAND_VELOCITY, "demand_weight"),
    (RuleKind.INVENTORY_SCARCITY, "inventory_weight"),
)


def round_half_away_from_zero(value: Decimal) -> int:
    # Not bounded by the context precision, so huge totals still round.
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def format_price(minor_units: int, symbol: str = "$") -> str:
    """Render minor currency units for display, e.g. ``15000 -> "$150.00"``."""
    return f"{symbol}{Decimal(minor_units) / 100:.2f}"


def price_change_percent(base_price: int, current_price: int) -> float:
    """Relative change of ``current_price`` against ``base_price`` in percent."""
    if base_price == 0:
        return 0.0
    return (current_price - base_price) / base_price * 100


class PricingCalculator:
    """
    Deterministic, side-effect free price derivation.

    Holds a fixed, ordered list of (rule, weight attribute) pairs. The weight
    attribute is read from the event's ``PricingConfig``.
    """

    def __init__(self, rules: Sequence[WeightedRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    def calculate(
        self, event: Event, recent_booking_count: int, now: datetime
    ) -> PriceCalculationResult:
        config = event.pricing_config
        ratios = {kind: 0.0 for kind in RuleKind}
        weighted = {kind: Decimal(0) for kind in RuleKind}

        for kind, weight_attr in self._rules:
            ratio = evaluate(kind, event, now, recent_booking_count)
            ratios[kind] = ratio
            weighted[kind] = Decimal(ratio) * Decimal(getattr(config, weight_attr))

        total = sum(weighted.values(), Decimal(0))
        raw_price = round_half_away_from_zero(Decimal(event.base_price) * (Decimal(1) + total))

        current_price = raw_price
        capped_by_floor = False
        capped_by_ceiling = False
        if current_price < event.price_floor:
            current_price = event.price_floor
            capped_by_floor = True
        if current_price > event.price_ceiling:
            current_price = event.price_ceiling
            capped_by_ceiling = True

        return PriceCalculationResult(
            base_price=event.base_price,
            raw_price=raw_price,
            current_price=current_price,
            adjustments=_by_rule(ratios),
            weighted=_by_rule({kind: float(value) for kind, value in weighted.items()}),
            total_adjustment=float(total),
            capped_by_floor=capped_by_floor,
            capped_by_ceiling=capped_by_ceiling,
            recent_booking_count=recent_booking_count,
            remaining=event.remaining,
            calculated_at=now,
        )


def _by_rule(values: dict) -> RuleAdjustments:
    return RuleAdjustments(
        time=values[RuleKind.TIME_URGENCY],
        demand=values[RuleKind.DEMAND_VELOCITY],
        inventory=values[RuleKind.INVENTORY_SCARCITY],
    )


__all__ = [
    "DEFAULT_RULES",
    "PricingCalculator",
    "format_price",
    "price_change_percent",
    "round_half_away_from_zero",
]
