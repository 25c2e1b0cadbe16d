"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.yaml_booking_source import YamlBookingSource
from ..cache.slot_cache import SlotCache
from ..config import EngineConfig, load_config
from ..domain.availability import AvailabilityChecker
from ..domain.exceptions import SlotGuardError
from ..domain.models import AvailabilityResult
from ..services.booking_calendar import BookingCalendarService

app = typer.Typer(
    name="slotguard",
    help="Check appointment slot availability against a day's bookings",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
BookingsOption = Annotated[
    Path,
    typer.Option("--bookings", "-b", help="YAML file with the bookings list"),
]
DurationOption = Annotated[
    int,
    typer.Option("--duration", "-d", min=1, help="Service duration in minutes"),
]
ResourceOption = Annotated[
    Optional[str],
    typer.Option("--resource", "-r", help="Resource (staff member) id; omit for any"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    slotguard - appointment slot conflict checks.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _build_service(config: EngineConfig, bookings_file: Path) -> BookingCalendarService:
    """Wire source, cache and checker the way a long-running host would."""
    cache = SlotCache.from_settings(config.cache)
    checker = AvailabilityChecker.from_config(config, cache)
    source = YamlBookingSource(bookings_file, tz=config.timezone)
    return BookingCalendarService(source, checker, cache, interval=config.interval)


def _render_status(result: AvailabilityResult) -> str:
    if result.available:
        return "[green]available[/green]"
    return f"[red]{result.message}[/red]"


@app.command()
def check(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:mm)")],
    bookings_file: BookingsOption,
    duration: DurationOption = 30,
    resource: ResourceOption = None,
    config_file: ConfigOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw result as JSON")] = False,
):
    """
    Check whether a single slot can be booked.

    Examples:

        slotguard check 2025-02-07 14:00 -b bookings.yaml -d 30 -r barber-1
    """
    try:
        config = load_config(config_file)
        service = _build_service(config, bookings_file)

        result = asyncio.run(
            service.check_slot(
                day=date,
                time_of_day=time,
                duration_minutes=duration,
                resource_id=resource,
            )
        )

        if as_json:
            console.print_json(json.dumps(result.to_dict()))
            return

        who = resource or "any resource"
        if result.available:
            console.print(Panel.fit(
                f"[bold green]✓ {date} {time} ({duration} min) is free for {who}[/bold green]",
                title="Available"
            ))
        else:
            console.print(Panel.fit(
                f"[bold red]✗ {result.message}[/bold red]\n\n"
                f"[bold]Reason:[/bold] {result.reason.value}",
                title="Unavailable"
            ))

    except (FileNotFoundError, SlotGuardError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def board(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    bookings_file: BookingsOption,
    duration: DurationOption = 30,
    resource: ResourceOption = None,
    config_file: ConfigOption = None,
):
    """
    Show every slot of the day with its availability.
    """
    try:
        config = load_config(config_file)
        service = _build_service(config, bookings_file)

        rows = asyncio.run(
            service.day_board(day=date, duration_minutes=duration, resource_id=resource)
        )

        table = Table(title=f"{date} · {duration} min · {resource or 'any resource'}")
        table.add_column("Slot", style="cyan")
        table.add_column("Status")

        for label, result in rows:
            table.add_row(label, _render_status(result))

        console.print()
        console.print(table)
        free = sum(1 for _, result in rows if result.available)
        console.print(f"\n[bold]{free}[/bold] of {len(rows)} slots available\n")

    except (FileNotFoundError, SlotGuardError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def blocked(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    bookings_file: BookingsOption,
    config_file: ConfigOption = None,
):
    """
    List slot labels blocked by bookings or the configured interval.
    """
    try:
        config = load_config(config_file)
        service = _build_service(config, bookings_file)

        labels = asyncio.run(service.unavailable_slots(date))

        if not labels:
            console.print(f"\n[green]No blocked slots on {date}.[/green]\n")
            return

        console.print(f"\n[bold]Blocked slots on {date}:[/bold] {', '.join(labels)}\n")

    except (FileNotFoundError, SlotGuardError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def cache_info(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    bookings_file: BookingsOption,
    duration: DurationOption = 30,
    config_file: ConfigOption = None,
):
    """
    Build the day board twice and show cache statistics.
    """
    try:
        config = load_config(config_file)
        service = _build_service(config, bookings_file)

        async def _warm_twice() -> None:
            await service.day_board(day=date, duration_minutes=duration)
            await service.day_board(day=date, duration_minutes=duration)

        asyncio.run(_warm_twice())
        stats = service.checker.cache.stats()

        table = Table(title="Cache statistics")
        table.add_column("Store", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Hits", justify="right")
        table.add_column("Misses", justify="right")
        table.add_column("Hit rate", justify="right")

        for store in stats.stores:
            table.add_row(
                store.name,
                str(store.size),
                str(store.hits),
                str(store.misses),
                f"{store.hit_rate:.0%}",
            )

        console.print()
        console.print(table)
        console.print(
            f"\nFaults: {stats.faults} · "
            f"estimated memory: {stats.estimated_memory_bytes} bytes\n"
        )

    except (FileNotFoundError, SlotGuardError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotguard[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
