"""
Contention simulator: fire concurrent reservations at one event and verify the
capacity invariant afterwards.

Usage (example from CLI):
    from dynamic_ticketing.simulation import SimulationConfig, run_contention

    summary = run_contention(store, SimulationConfig(requests=5, capacity=3))
    print(summary["accepted"], summary["invariant_holds"])

Outputs are saved to `results/` when ``persist`` is set:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dynamic_ticketing.booking.coordinator import BookingCoordinator
from dynamic_ticketing.catalog import EventCatalog
from dynamic_ticketing.config import get_settings
from dynamic_ticketing.domain import (
    Booking,
    Event,
    EventNotFoundError,
    InsufficientInventoryError,
    TransientStorageError,
)
from dynamic_ticketing.pricing.coordinator import PricingCoordinator
from dynamic_ticketing.stores.interfaces import BookingStore
from dynamic_ticketing.utils.logging import get_logger
from dynamic_ticketing.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

ACCEPTED = "accepted"
INSUFFICIENT = "insufficient_inventory"
TRANSIENT = "transient_error"


@dataclass(frozen=True)
class SimulationConfig:
    """Parameters for one contention run."""

    requests: int = 5
    quantity: int = 1
    concurrency: Optional[int] = None
    event_id: Optional[int] = None
    # Used only when no event_id is given and a fresh event is created.
    capacity: int = 3
    base_price: int = 5_000
    price_floor: Optional[int] = None
    price_ceiling: Optional[int] = None
    days_until_event: float = 40.0
    lock_timeout_ms: Optional[int] = None
    persist: bool = False
    results_dir: Path | str = "results"


@dataclass(frozen=True)
class ReservationOutcome:
    request: int
    status: str
    booking: Optional[Booking] = None
    remaining: Optional[int] = None
    error: Optional[str] = None


def _round_float(value: float, decimals: int = 2) -> float:
    """Round a float to specified decimal places for human-readable output."""
    return round(value, decimals)


def _create_target_event(catalog: EventCatalog, config: SimulationConfig) -> Event:
    scheduled_at = datetime.now(timezone.utc) + timedelta(days=config.days_until_event)
    return catalog.create_event(
        {
            "name": "Contention simulation",
            "venue": "Simulated venue",
            "scheduled_at": scheduled_at,
            "total_capacity": config.capacity,
            "base_price": config.base_price,
            "price_floor": config.price_floor if config.price_floor is not None else config.base_price,
            "price_ceiling": (
                config.price_ceiling if config.price_ceiling is not None else config.base_price * 3
            ),
        }
    )


def _reserve_once(
    booking: BookingCoordinator,
    start: threading.Event,
    event_id: int,
    request: int,
    config: SimulationConfig,
) -> ReservationOutcome:
    start.wait()
    try:
        result = booking.reserve(
            event_id,
            config.quantity,
            f"sim-{request}@example.com",
            lock_timeout_ms=config.lock_timeout_ms,
        )
    except InsufficientInventoryError as exc:
        return ReservationOutcome(request, INSUFFICIENT, remaining=exc.remaining, error=exc.message)
    except TransientStorageError as exc:
        return ReservationOutcome(request, TRANSIENT, error=exc.message)
    return ReservationOutcome(request, ACCEPTED, booking=result)


def _fire(
    booking: BookingCoordinator, event_id: int, config: SimulationConfig, workers: int
) -> List[ReservationOutcome]:
    start = threading.Event()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reserve") as pool:
        futures = [
            pool.submit(_reserve_once, booking, start, event_id, request, config)
            for request in range(1, config.requests + 1)
        ]
        start.set()
        return [future.result() for future in futures]


def _summarize(
    before: Event,
    after: Event,
    outcomes: List[ReservationOutcome],
    bookings: List[Booking],
    stats: ProfileStats,
    workers: int,
) -> Dict[str, Any]:
    statuses = Counter(outcome.status for outcome in outcomes)
    accepted = [o.booking for o in outcomes if o.booking is not None]
    accepted_quantity = sum(b.quantity for b in accepted)
    committed_quantity = sum(b.quantity for b in bookings)
    reserved_delta = after.reserved_count - before.reserved_count

    invariant_holds = (
        after.reserved_count <= after.total_capacity
        and accepted_quantity == reserved_delta
        and committed_quantity == after.reserved_count
    )
    duration = stats.duration_seconds
    return {
        "event_id": after.id,
        "requests": len(outcomes),
        "concurrency": workers,
        "accepted": statuses[ACCEPTED],
        "rejected": statuses[INSUFFICIENT],
        "transient_failures": statuses[TRANSIENT],
        "accepted_quantity": accepted_quantity,
        "reserved_count": after.reserved_count,
        "total_capacity": after.total_capacity,
        "remaining": after.remaining,
        "unit_prices": sorted({b.unit_price for b in accepted}),
        "revenue": sum(b.price_paid for b in accepted),
        "invariant_holds": invariant_holds,
        "duration_seconds": _round_float(duration, 4),
        "throughput_rps": _round_float(len(outcomes) / duration) if duration else 0.0,
        "peak_rss_bytes": stats.peak_rss_bytes,
        "cpu_percent": _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None,
    }


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def run_contention(store: BookingStore, config: SimulationConfig) -> Dict[str, Any]:
    """
    Run one contention burst against ``store`` and return its summary.

    Every request is released at once from a start gate, so acceptance order is
    whatever order the store grants the event lock in.
    """
    if config.requests < 1:
        raise ValueError("requests must be at least 1")

    workers = config.concurrency or get_settings().simulation_concurrency
    pricing = PricingCoordinator(store)
    catalog = EventCatalog(store, pricing)
    booking = BookingCoordinator(store)

    if config.event_id is None:
        before = _create_target_event(catalog, config)
    else:
        before = store.get_event(config.event_id)
        if before is None:
            raise EventNotFoundError(config.event_id)

    log.info(
        "[SIMULATION START]",
        extra={"event_id": before.id, "requests": config.requests, "concurrency": workers},
    )
    with profile_block(f"contention-{before.id}") as stats:
        outcomes = _fire(booking, before.id, config, workers)

    after = store.get_event(before.id)
    summary = _summarize(before, after, outcomes, store.list_bookings(before.id), stats, workers)
    log.info("[SIMULATION COMPLETE]", extra=summary)

    if config.persist:
        payload = {"timestamp": datetime.now(timezone.utc).isoformat(), "summary": summary}
        _persist_results(payload, Path(config.results_dir))

    return summary


__all__ = ["ReservationOutcome", "SimulationConfig", "run_contention"]
