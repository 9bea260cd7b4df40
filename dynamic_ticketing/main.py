from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer

from dynamic_ticketing.booking.coordinator import BookingCoordinator
from dynamic_ticketing.catalog import EventCatalog
from dynamic_ticketing.config import Settings, get_settings
from dynamic_ticketing.domain import DomainError
from dynamic_ticketing.pricing.calculator import format_price
from dynamic_ticketing.pricing.coordinator import PricingCoordinator
from dynamic_ticketing.reporter import (
    print_bookings,
    print_breakdown,
    print_events,
    print_simulation,
)
from dynamic_ticketing.simulation import SimulationConfig, run_contention
from dynamic_ticketing.stores import BookingStore, create_store
from dynamic_ticketing.utils.logging import configure_logging

app = typer.Typer(
    help=(
        "Dynamic ticket pricing CLI. "
        "With STORE_BACKEND=memory no state survives between commands."
    )
)

_DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M"]
_MEMORY_BACKEND_NOTE = (
    "Note: the memory backend starts empty for every command and keeps nothing "
    "afterwards; only 'simulate' is useful with it. Use STORE_BACKEND=postgres "
    "to keep events and bookings between commands."
)


@dataclass
class Services:
    settings: Settings
    store: BookingStore
    pricing: PricingCoordinator
    catalog: EventCatalog
    booking: BookingCoordinator


@contextmanager
def _services() -> Iterator[Services]:
    """
    Wire the store and services for one command.

    Domain errors become a one-line message on stderr and exit code 1.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    store = create_store(settings)
    pricing = PricingCoordinator(store)
    try:
        yield Services(
            settings=settings,
            store=store,
            pricing=pricing,
            catalog=EventCatalog(store, pricing),
            booking=BookingCoordinator(store),
        )
    except DomainError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        store.close()


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"backend={settings.store_backend} lock_timeout_ms={settings.lock_timeout_ms} "
        f"demand_window={settings.demand_window_minutes}m"
    )
    if settings.store_backend == "memory":
        typer.echo(_MEMORY_BACKEND_NOTE)


@app.command("init-db")
def init_db() -> None:
    """
    Create the events and bookings tables if they do not exist.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    if settings.store_backend != "postgres":
        typer.echo(f"Backend '{settings.store_backend}' needs no schema.")
        typer.echo(_MEMORY_BACKEND_NOTE)
        return

    from dynamic_ticketing.stores.postgres import apply_schema

    apply_schema()
    typer.echo("Schema applied.")


@app.command("create-event")
def create_event(
    name: str = typer.Option(..., "--name", "-n", help="Event name."),
    venue: str = typer.Option(..., "--venue", "-v", help="Venue name."),
    scheduled_at: datetime = typer.Option(
        ..., "--at", formats=_DATETIME_FORMATS, help="Start time (UTC when no offset)."
    ),
    capacity: int = typer.Option(..., "--capacity", "-c", help="Total tickets."),
    base_price: int = typer.Option(..., "--base-price", help="Base price in minor units."),
    price_floor: Optional[int] = typer.Option(
        None, "--floor", help="Price floor in minor units (default: base price)."
    ),
    price_ceiling: Optional[int] = typer.Option(
        None, "--ceiling", help="Price ceiling in minor units (default: 2x base price)."
    ),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
) -> None:
    """
    Create an event with the default pricing configuration.
    """
    with _services() as svc:
        event = svc.catalog.create_event(
            {
                "name": name,
                "venue": venue,
                "description": description,
                "scheduled_at": scheduled_at,
                "total_capacity": capacity,
                "base_price": base_price,
                "price_floor": price_floor if price_floor is not None else base_price,
                "price_ceiling": price_ceiling if price_ceiling is not None else base_price * 2,
            }
        )
        typer.echo(f"Created event {event.id}: {event.name}")


@app.command()
def events() -> None:
    """
    List events, refreshing each cached price first.
    """
    with _services() as svc:
        print_events(svc.catalog.list_events(), svc.settings.currency_symbol)


@app.command()
def price(event_id: int = typer.Argument(..., help="Event id.")) -> None:
    """
    Print the current price of an event.
    """
    with _services() as svc:
        result = svc.pricing.get_current_price(event_id)
        typer.echo(format_price(result.current_price, svc.settings.currency_symbol))


@app.command()
def breakdown(
    event_id: int = typer.Argument(..., help="Event id."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """
    Explain how the current price of an event was derived.
    """
    with _services() as svc:
        result = svc.pricing.get_breakdown(event_id)
        if as_json:
            typer.echo(result.model_dump_json(indent=2))
        else:
            print_breakdown(result)


@app.command()
def book(
    event_id: int = typer.Argument(..., help="Event id."),
    quantity: int = typer.Option(1, "--quantity", "-q", min=1, help="Tickets to reserve."),
    contact: str = typer.Option(..., "--contact", help="Booker contact (e-mail)."),
    idempotency_key: Optional[str] = typer.Option(
        None, "--idempotency-key", help="Replays the earlier booking made with this key."
    ),
) -> None:
    """
    Reserve tickets at the price derived under the event lock.
    """
    with _services() as svc:
        booking = svc.booking.reserve(
            event_id, quantity, contact, idempotency_key=idempotency_key
        )
        symbol = svc.settings.currency_symbol
        typer.echo(
            f"Booking {booking.id}: {booking.quantity} x "
            f"{format_price(booking.unit_price, symbol)} = {format_price(booking.price_paid, symbol)}"
        )


@app.command()
def bookings(event_id: int = typer.Argument(..., help="Event id.")) -> None:
    """
    List committed bookings for an event.
    """
    with _services() as svc:
        print_bookings(svc.booking.list_bookings(event_id), svc.settings.currency_symbol)


@app.command()
def simulate(
    requests: int = typer.Option(5, "--requests", "-r", min=1, help="Concurrent reservations."),
    quantity: int = typer.Option(1, "--quantity", "-q", min=1, help="Tickets per request."),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", help="Worker threads (default from settings)."
    ),
    event_id: Optional[int] = typer.Option(
        None, "--event-id", help="Target an existing event instead of creating one."
    ),
    capacity: int = typer.Option(3, "--capacity", "-c", help="Capacity of the created event."),
    base_price: int = typer.Option(5_000, "--base-price", help="Base price of the created event."),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write results JSON."),
    results_dir: Path = typer.Option(Path("results"), "--results-dir"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """
    Fire concurrent reservations at one event and check the capacity invariant.
    """
    with _services() as svc:
        summary = run_contention(
            svc.store,
            SimulationConfig(
                requests=requests,
                quantity=quantity,
                concurrency=concurrency,
                event_id=event_id,
                capacity=capacity,
                base_price=base_price,
                persist=persist,
                results_dir=results_dir,
            ),
        )
        if as_json:
            typer.echo(json.dumps(summary, indent=2))
        else:
            print_simulation(summary, svc.settings.currency_symbol)

    if not summary["invariant_holds"]:
        typer.echo("Capacity invariant violated.", err=True)
        raise typer.Exit(code=2)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
