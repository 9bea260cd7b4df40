"""
Pricing rule evaluators.

Each rule is a pure function of an event snapshot (plus the evaluation instant
or the recent booking count) returning a dimensionless ratio in ``[0, inf)``:
the fraction of the base price to add. The rule set is closed; ``RuleKind``
names every variant and ``evaluate`` dispatches on it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from dynamic_ticketing.domain.models import Event

LAST_DAY = timedelta(hours=24)
LAST_WEEK = timedelta(days=7)
LAST_MONTH = timedelta(days=30)


class RuleKind(str, Enum):
    TIME_URGENCY = "time"
    DEMAND_VELOCITY = "demand"
    INVENTORY_SCARCITY = "inventory"


def time_urgency_ratio(event: Event, now: datetime) -> float:
    """
    Ratio for the time left until ``event.scheduled_at``.

    Tiers are checked most urgent first and each boundary belongs to the more
    urgent tier. Events that already started get no adjustment.
    """
    rules = event.pricing_config.time_rules
    delta = event.scheduled_at - now
    if delta < timedelta(0):
        return 0.0
    if delta <= LAST_DAY:
        return rules.hours_to_24
    if delta <= LAST_WEEK:
        return rules.days_1_to_7
    if delta <= LAST_MONTH:
        return rules.days_7_to_30
    return rules.days_30_plus


def demand_velocity_ratio(event: Event, recent_booking_count: int) -> float:
    """Binary step: the configured increase once the threshold is reached."""
    rules = event.pricing_config.demand_rules
    if recent_booking_count >= rules.threshold:
        return rules.increase
    return 0.0


def inventory_scarcity_ratio(event: Event) -> float:
    """
    Ratio for the share of inventory still unsold.

    A sold-out (or oversold) event is its own top-severity case; otherwise the
    smallest breakpoint strictly above the remaining percentage applies.
    """
    rules = event.pricing_config.inventory_rules
    remaining = event.remaining
    if remaining <= 0:
        return rules.sold_out

    pct_remaining = 100 * remaining / event.total_capacity
    for breakpoint in sorted(rules.thresholds):
        if pct_remaining < breakpoint:
            return rules.thresholds[breakpoint]
    return rules.ample


def evaluate(kind: RuleKind, event: Event, now: datetime, recent_booking_count: int) -> float:
    if kind is RuleKind.TIME_URGENCY:
        return time_urgency_ratio(event, now)
    if kind is RuleKind.DEMAND_VELOCITY:
        return demand_velocity_ratio(event, recent_booking_count)
    if kind is RuleKind.INVENTORY_SCARCITY:
        return inventory_scarcity_ratio(event)
    raise ValueError(f"Unknown pricing rule '{kind}'")


__all__ = [
    "RuleKind",
    "time_urgency_ratio",
    "demand_velocity_ratio",
    "inventory_scarcity_ratio",
    "evaluate",
]
