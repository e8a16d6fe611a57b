"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryScheduleStore
from ..adapters.sql_store import SqlScheduleStore
from ..config import AppConfig, get_default_config_path
from ..domain.days import resolve_day_of_week
from ..domain.exceptions import BookingSlotsError
from ..domain.models import ANY_STAFF, Conflict
from ..services.availability import AvailabilityService, total_service_duration

app = typer.Typer(
    name="bookingslots",
    help="List bookable appointment slots and book them without double-booking",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
StaffOption = Annotated[
    Optional[str],
    typer.Option("--staff", "-s", help=f"Staff id or name, or '{ANY_STAFF}' for whoever is free"),
]
ServiceOption = Annotated[
    Optional[List[str]],
    typer.Option("--service", help="Service name; repeat to book several services back to back"),
]
DurationOption = Annotated[
    Optional[int],
    typer.Option("--duration", "-d", help="Service duration in minutes (ignored with --service)"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    Appointment slot availability for a single shop.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
        )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _build_store(config: AppConfig):
    """SQL store when a database is configured, else an in-memory copy of the config."""
    if config.database_url:
        return SqlScheduleStore.from_url(config.database_url, config.lock_timeout_seconds)
    return InMemoryScheduleStore.from_config(config)


def _resolve_staff(config: AppConfig, staff: Optional[str]) -> Optional[str]:
    if staff is None or staff == ANY_STAFF:
        return staff

    member = config.find_staff(staff)
    if member is None:
        raise ValueError(f"Unknown staff member: {staff}")
    return member.id


def _resolve_duration(config: AppConfig, services: Optional[List[str]], duration: Optional[int]) -> int:
    if services:
        return total_service_duration(config.resolve_service_durations(services))
    if duration is not None:
        return duration
    return config.defaults.service_duration_minutes


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def day(
    date: Annotated[str, typer.Argument(help="Calendar date (YYYY-MM-DD)")],
    timezone: Annotated[Optional[str], typer.Option("--timezone", "-t", help="IANA timezone. Defaults to the configured one")] = None,
    config_file: ConfigOption = None,
):
    """
    Show which day of the week a date falls on in the business timezone.
    """
    try:
        tz = timezone or _load_config(config_file).timezone
        console.print(f"{date} is a [bold]{resolve_day_of_week(date, tz).label}[/bold] in {tz}")
    except (BookingSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def slots(
    date: Annotated[str, typer.Argument(help="Calendar date (YYYY-MM-DD)")],
    staff: StaffOption = None,
    services: ServiceOption = None,
    duration: DurationOption = None,
    step: Annotated[Optional[int], typer.Option("--step", help="Minutes between slot starts")] = None,
    show_all: Annotated[bool, typer.Option("--all", "-a", help="Also list unavailable slots with their reason")] = False,
    config_file: ConfigOption = None,
):
    """
    List the slots for a date.

    Examples:

        bookingslots slots 2024-03-15

        bookingslots slots 2024-03-15 --staff alice --service Haircut --service Beard

        bookingslots slots 2024-03-15 --staff any_staff --all
    """
    try:
        config = _load_config(config_file)
        staff_id = _resolve_staff(config, staff)
        service_duration = _resolve_duration(config, services, duration)
        slot_step = step if step is not None else config.defaults.slot_step_minutes

        service = AvailabilityService(_build_store(config))
        listing = service.get_available_slots(
            date,
            timezone=config.timezone,
            service_duration_minutes=service_duration,
            slot_step_minutes=slot_step,
            staff_id=staff_id,
        )
    except (BookingSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"\n[bold cyan]{listing.date.isoformat()}[/bold cyan] ({listing.day_of_week.label}, {listing.timezone}) "
        f"- {listing.service_duration_minutes} min every {listing.slot_step_minutes} min"
    )

    if listing.message:
        console.print(f"[yellow]⚠ {listing.message}[/yellow]")

    rows = listing.slots if show_all else listing.available_slots
    if not rows:
        console.print()
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Status")

    for slot in rows:
        status = "[green]available[/green]" if slot.available else f"[dim]{slot.reason}[/dim]"
        table.add_row(slot.display_time, slot.display_end_time, status)

    console.print()
    console.print(table)
    console.print(f"[bold green]✓ {len(listing.available_slots)} available slot(s)[/bold green]\n")


@app.command()
def book(
    date: Annotated[str, typer.Argument(help="Calendar date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    staff: StaffOption = None,
    services: ServiceOption = None,
    duration: DurationOption = None,
    customer: Annotated[Optional[str], typer.Option("--customer", help="Customer name")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-text notes")] = None,
    config_file: ConfigOption = None,
):
    """
    Book a slot, re-checking availability atomically.
    """
    try:
        config = _load_config(config_file)
        staff_id = _resolve_staff(config, staff)
        service_duration = _resolve_duration(config, services, duration)

        if not config.database_url:
            console.print("[yellow]⚠ No database_url configured: the booking is not persisted.[/yellow]")

        service = AvailabilityService(_build_store(config))
        result = service.book_slot(
            date,
            start_time,
            service_duration_minutes=service_duration,
            timezone=config.timezone,
            staff_id=staff_id,
            customer_name=customer,
            notes=notes,
        )
    except (BookingSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if isinstance(result, Conflict):
        console.print(f"[bold red]✗ {result.message}[/bold red]")
        raise typer.Exit(2)

    console.print(Panel.fit(
        f"[bold green]✓ Appointment booked[/bold green]\n\n{result.format_display()}",
        title="Booking"
    ))


@app.command("init-db")
def init_db(
    load: Annotated[bool, typer.Option("--load/--no-load", help="Also load the configured schedule")] = True,
    config_file: ConfigOption = None,
):
    """
    Create the database schema and load the configured schedule into it.
    """
    try:
        config = _load_config(config_file)
        if not config.database_url:
            raise ValueError("database_url is not set in the configuration.")

        store = SqlScheduleStore.from_url(config.database_url, config.lock_timeout_seconds)
        try:
            store.create_schema()
            if load:
                store.load_config(config)
        finally:
            store.close()
    except (BookingSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print("[green]✓ Database initialised.[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
