from __future__ import annotations

from datetime import timedelta

import pytest

from dynamic_ticketing.domain import PricingConfig
from dynamic_ticketing.domain.models import DemandRules, InventoryRules, TimeRules
from dynamic_ticketing.pricing.rules import (
    RuleKind,
    demand_velocity_ratio,
    evaluate,
    inventory_scarcity_ratio,
    time_urgency_ratio,
)

CAPACITY = 100


class TestTimeUrgency:
    """Tier selection by time left until the event starts."""

    @pytest.mark.parametrize(
        ("until", "expected"),
        [
            (timedelta(hours=12), 0.50),
            (timedelta(hours=24), 0.50),
            (timedelta(hours=24, seconds=1), 0.20),
            (timedelta(days=7), 0.20),
            (timedelta(days=7, seconds=1), 0.10),
            (timedelta(days=30), 0.10),
            (timedelta(days=30, seconds=1), 0.0),
            (timedelta(days=40), 0.0),
        ],
    )
    def test_tiers_with_boundaries_in_the_more_urgent_tier(
        self, make_event, clock, until: timedelta, expected: float
    ) -> None:
        assert time_urgency_ratio(make_event(until=until), clock.now) == expected

    def test_event_starting_now_is_most_urgent(self, make_event, clock) -> None:
        assert time_urgency_ratio(make_event(until=timedelta(0)), clock.now) == 0.50

    def test_past_event_gets_no_adjustment(self, make_event, clock) -> None:
        assert time_urgency_ratio(make_event(until=timedelta(hours=-1)), clock.now) == 0.0

    def test_uses_configured_ratios(self, make_event, clock) -> None:
        config = PricingConfig(time_rules=TimeRules(hours_to_24=0.9, days_1_to_7=0.4))
        event = make_event(until=timedelta(days=3), pricing_config=config)

        assert time_urgency_ratio(event, clock.now) == 0.4


class TestDemandVelocity:
    """Binary step on the trailing booking count."""

    @pytest.mark.parametrize(("count", "expected"), [(0, 0.0), (9, 0.0), (10, 0.15), (250, 0.15)])
    def test_step_at_threshold(self, make_event, count: int, expected: float) -> None:
        assert demand_velocity_ratio(make_event(), count) == expected

    def test_zero_threshold_always_applies(self, make_event) -> None:
        config = PricingConfig(demand_rules=DemandRules(threshold=0, increase=0.3))

        assert demand_velocity_ratio(make_event(pricing_config=config), 0) == 0.3


class TestInventoryScarcity:
    """Breakpoint ladder on the percentage of tickets still unsold."""

    @pytest.mark.parametrize(
        ("reserved", "expected"),
        [
            (0, 0.0),
            (50, 0.0),  # exactly 50% remaining is not below the 50 breakpoint
            (51, 0.10),
            (80, 0.10),  # exactly 20% remaining
            (81, 0.25),
            (90, 0.25),  # exactly 10% remaining
            (91, 0.50),
            (99, 0.50),
        ],
    )
    def test_breakpoints(self, make_event, reserved: int, expected: float) -> None:
        event = make_event(total_capacity=CAPACITY, reserved_count=reserved)

        assert inventory_scarcity_ratio(event) == expected

    def test_sold_out_uses_sold_out_ratio(self, make_event) -> None:
        config = PricingConfig(inventory_rules=InventoryRules(sold_out=0.8))
        event = make_event(total_capacity=CAPACITY, reserved_count=CAPACITY, pricing_config=config)

        assert inventory_scarcity_ratio(event) == 0.8

    def test_custom_breakpoints_pick_smallest_match(self, make_event) -> None:
        rules = InventoryRules(sold_out=1.0, thresholds={5: 1.0, 30: 0.4}, ample=0.05)
        config = PricingConfig(inventory_rules=rules)

        assert inventory_scarcity_ratio(
            make_event(reserved_count=97, pricing_config=config)
        ) == 1.0
        assert inventory_scarcity_ratio(
            make_event(reserved_count=80, pricing_config=config)
        ) == 0.4
        assert inventory_scarcity_ratio(
            make_event(reserved_count=10, pricing_config=config)
        ) == 0.05


def test_ratios_are_monotone_in_remaining_inventory(make_event) -> None:
    ratios = [
        inventory_scarcity_ratio(make_event(reserved_count=reserved))
        for reserved in range(CAPACITY + 1)
    ]

    assert ratios == sorted(ratios)


def test_evaluate_dispatches_every_rule_kind(make_event, clock) -> None:
    event = make_event(until=timedelta(hours=2), reserved_count=95)

    assert evaluate(RuleKind.TIME_URGENCY, event, clock.now, 0) == 0.50
    assert evaluate(RuleKind.DEMAND_VELOCITY, event, clock.now, 12) == 0.15
    assert evaluate(RuleKind.INVENTORY_SCARCITY, event, clock.now, 0) == 0.50
