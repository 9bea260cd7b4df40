"""
Event catalog service.

Validates creation input (the only place capacity and price bounds are
checked) and serves event snapshots, refreshing each event's cached price on
read the same way the pricing coordinator does.
"""

from __future__ import annotations

from typing import Any, Mapping, Union

from pydantic import ValidationError

from dynamic_ticketing.domain import Event, EventNotFoundError, InvalidConfigurationError, NewEvent
from dynamic_ticketing.pricing.coordinator import PricingCoordinator
from dynamic_ticketing.stores.interfaces import BookingStore
from dynamic_ticketing.utils.logging import get_logger

log = get_logger(__name__)


class EventCatalog:
    """Service for event creation and lookup."""

    def __init__(self, store: BookingStore, pricing: PricingCoordinator) -> None:
        self._store = store
        self._pricing = pricing

    def create_event(self, data: Union[NewEvent, Mapping[str, Any]]) -> Event:
        """Validate and persist a new event.

        Raises:
            InvalidConfigurationError: If capacity, price bounds or pricing
                configuration violate their invariants.
        """
        if isinstance(data, NewEvent):
            new_event = data
        else:
            try:
                new_event = NewEvent.model_validate(dict(data))
            except ValidationError as exc:
                errors = exc.errors(include_url=False, include_context=False)
                reasons = "; ".join(_describe(err) for err in errors)
                raise InvalidConfigurationError(f"Invalid event: {reasons}", errors) from exc

        event = self._store.create_event(new_event)
        log.info(
            "Event created",
            extra={
                "event_id": event.id,
                "total_capacity": event.total_capacity,
                "base_price": event.base_price,
            },
        )
        return event

    def get_event(self, event_id: int, refresh: bool = True) -> Event:
        if refresh:
            self._pricing.refresh_and_persist(event_id)
        event = self._store.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def list_events(self, refresh: bool = True) -> list[Event]:
        events = self._store.list_events()
        if not refresh:
            return events
        for event in events:
            self._pricing.refresh_and_persist(event.id)
        return self._store.list_events()


def _describe(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = str(error.get("msg", "invalid value"))
    return f"{location}: {message}" if location else message


__all__ = ["EventCatalog"]
