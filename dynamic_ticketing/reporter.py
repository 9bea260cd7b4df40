from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from dynamic_ticketing.domain import Booking, Event, PriceBreakdown
from dynamic_ticketing.pricing.calculator import format_price


def _yes_no(flag: bool) -> str:
    return "[bold red]yes[/bold red]" if flag else "no"


def print_events(
    events: Iterable[Event], currency_symbol: str = "$", console: Optional[Console] = None
) -> None:
    """
    Render events as a rich table, soonest first.
    """
    console = console or Console()
    events = list(events)
    if not events:
        console.print("[yellow]No events to display.[/yellow]")
        return

    table = Table(title="Events", box=box.ROUNDED)
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Venue")
    table.add_column("Scheduled (UTC)", style="green")
    table.add_column("Sold / Capacity", justify="right", style="magenta")
    table.add_column("Base", justify="right")
    table.add_column("Current", justify="right", style="bold green")

    for event in events:
        table.add_row(
            str(event.id),
            event.name,
            event.venue,
            event.scheduled_at.strftime("%Y-%m-%d %H:%M"),
            f"{event.reserved_count:,} / {event.total_capacity:,}",
            format_price(event.base_price, currency_symbol),
            format_price(event.current_price, currency_symbol),
        )

    console.print(table)


def print_breakdown(breakdown: PriceBreakdown, console: Optional[Console] = None) -> None:
    """
    Render a price breakdown: one row per rule plus the clamp flags.
    """
    console = console or Console()
    calc = breakdown.calculation

    table = Table(
        title=f"Price breakdown for event {breakdown.event_id}",
        box=box.ROUNDED,
        caption=(
            f"{breakdown.base_price} -> {breakdown.current_price} ({breakdown.price_change})"
        ),
    )
    table.add_column("Rule", style="cyan", no_wrap=True)
    table.add_column("Raw ratio", justify="right", style="yellow")
    table.add_column("Weighted impact", justify="right", style="bold green")

    table.add_row("Time urgency", f"{calc.adjustments.time:.4f}", breakdown.impacts["time"])
    table.add_row("Demand velocity", f"{calc.adjustments.demand:.4f}", breakdown.impacts["demand"])
    table.add_row(
        "Inventory scarcity", f"{calc.adjustments.inventory:.4f}", breakdown.impacts["inventory"]
    )
    table.add_row("Total", f"{calc.total_adjustment:.4f}", breakdown.impacts["total"], style="bold")

    console.print(table)
    console.print(
        f"Recent bookings: {calc.recent_booking_count} | Remaining: {calc.remaining} | "
        f"Capped by floor: {_yes_no(breakdown.capped_by_floor)} | "
        f"Capped by ceiling: {_yes_no(breakdown.capped_by_ceiling)}"
    )


def print_bookings(
    bookings: Iterable[Booking], currency_symbol: str = "$", console: Optional[Console] = None
) -> None:
    console = console or Console()
    bookings = list(bookings)
    if not bookings:
        console.print("[yellow]No bookings to display.[/yellow]")
        return

    table = Table(title=f"Bookings for event {bookings[0].event_id}", box=box.ROUNDED)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Contact")
    table.add_column("Qty", justify="right", style="magenta")
    table.add_column("Unit price", justify="right")
    table.add_column("Paid", justify="right", style="bold green")
    table.add_column("Committed (UTC)", style="green")

    for booking in bookings:
        table.add_row(
            str(booking.id),
            booking.booker_contact,
            str(booking.quantity),
            format_price(booking.unit_price, currency_symbol),
            format_price(booking.price_paid, currency_symbol),
            booking.committed_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


def print_simulation(
    summary: Dict[str, Any], currency_symbol: str = "$", console: Optional[Console] = None
) -> None:
    """
    Render a contention run summary as a two-column table.
    """
    console = console or Console()

    verdict = (
        "[bold green]HOLDS[/bold green]"
        if summary.get("invariant_holds")
        else "[bold red]VIOLATED[/bold red]"
    )
    table = Table(
        title=f"Contention run on event {summary.get('event_id')}",
        box=box.ROUNDED,
        caption=f"Capacity invariant: {verdict}",
        show_header=False,
    )
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    mem_bytes = summary.get("peak_rss_bytes") or 0
    cpu = summary.get("cpu_percent") or 0.0
    prices = ", ".join(format_price(p, currency_symbol) for p in summary.get("unit_prices", []))

    table.add_row("Requests", f"{summary.get('requests', 0):,}")
    table.add_row("Concurrency", str(summary.get("concurrency", 0)))
    table.add_row("Accepted", f"[bold green]{summary.get('accepted', 0):,}[/bold green]")
    table.add_row("Rejected (sold out)", f"{summary.get('rejected', 0):,}")
    table.add_row("Transient failures", f"{summary.get('transient_failures', 0):,}")
    table.add_row(
        "Reserved / Capacity",
        f"{summary.get('reserved_count', 0):,} / {summary.get('total_capacity', 0):,}",
    )
    table.add_row("Unit prices charged", prices or "N/A")
    table.add_row("Revenue", format_price(summary.get("revenue", 0), currency_symbol))
    table.add_row("Duration (s)", f"{summary.get('duration_seconds', 0.0):.3f}")
    table.add_row("Throughput (req/s)", f"{summary.get('throughput_rps', 0.0):,.2f}")
    table.add_row("Peak Memory (MB)", f"{mem_bytes / (1024 * 1024):.2f}")
    table.add_row("CPU %", f"{cpu:.1f}")

    console.print(table)


__all__ = ["print_bookings", "print_breakdown", "print_events", "print_simulation"]
