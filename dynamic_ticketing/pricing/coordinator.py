"""
Pricing coordinator.

Gathers the inputs the calculator needs (one committed event snapshot and the
number of bookings in the trailing demand window), runs the calculator, and
refreshes the cached ``current_price`` column on a best-effort basis.

The cached column is advisory. Reservations re-derive the price under the
event lock and never read it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from dynamic_ticketing.config import get_settings
from dynamic_ticketing.domain import (
    Event,
    EventNotFoundError,
    PriceBreakdown,
    PriceCalculationResult,
)
from dynamic_ticketing.domain.models import utc_now
from dynamic_ticketing.pricing.calculator import (
    PricingCalculator,
    format_price,
    price_change_percent,
)
from dynamic_ticketing.stores.interfaces import BookingStore
from dynamic_ticketing.utils.logging import get_logger

log = get_logger(__name__)


def _percent(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def build_breakdown(
    event_id: int, result: PriceCalculationResult, currency_symbol: str = "$"
) -> PriceBreakdown:
    """Turn a calculation result into display strings without recomputing it."""
    change = price_change_percent(result.base_price, result.current_price)
    return PriceBreakdown(
        event_id=event_id,
        base_price=format_price(result.base_price, currency_symbol),
        current_price=format_price(result.current_price, currency_symbol),
        price_change=f"{change:+.1f}%",
        impacts={
            "time": _percent(result.weighted.time),
            "demand": _percent(result.weighted.demand),
            "inventory": _percent(result.weighted.inventory),
            "total": _percent(result.total_adjustment),
        },
        capped_by_floor=result.capped_by_floor,
        capped_by_ceiling=result.capped_by_ceiling,
        calculation=result,
    )


class PricingCoordinator:
    """Read-side entry point for price queries."""

    def __init__(
        self,
        store: BookingStore,
        calculator: Optional[PricingCalculator] = None,
        clock: Callable[[], datetime] = utc_now,
        demand_window: Optional[timedelta] = None,
        currency_symbol: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._calculator = calculator or PricingCalculator()
        self._clock = clock
        self.demand_window = demand_window or timedelta(minutes=settings.demand_window_minutes)
        self.currency_symbol = (
            currency_symbol if currency_symbol is not None else settings.currency_symbol
        )

    def get_current_price(self, event_id: int) -> PriceCalculationResult:
        """
        Compute the price for an event from committed state.

        Raises:
            EventNotFoundError: If the event does not exist.
            TransientStorageError: If the store fails.
        """
        return self._calculate(self._snapshot(event_id))

    def refresh_and_persist(self, event_id: int) -> int:
        """
        Compute the price and write it to the cached column unless the event is
        locked by an in-flight reservation. Returns the computed price either way.

        The write only lands if ``reserved_count`` is unchanged since the read, so
        a reservation that commits in between keeps the price it wrote.
        """
        event = self._snapshot(event_id)
        result = self._calculate(event)
        written = self._store.try_update_current_price(
            event_id, result.current_price, expected_reserved=event.reserved_count
        )
        if not written:
            log.debug(
                "Price refresh skipped; event is locked or changed",
                extra={"event_id": event_id, "price": result.current_price},
            )
        return result.current_price

    def get_breakdown(self, event_id: int) -> PriceBreakdown:
        return build_breakdown(event_id, self.get_current_price(event_id), self.currency_symbol)

    def _snapshot(self, event_id: int) -> Event:
        event = self._store.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def _calculate(self, event: Event) -> PriceCalculationResult:
        now = self._clock()
        recent = self._store.count_bookings_since(event.id, now - self.demand_window, now)
        return self._calculator.calculate(event, recent, now)


__all__ = ["PricingCoordinator", "build_breakdown"]
