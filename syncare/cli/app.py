"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ..adapters.json_store import JsonRecordStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SyncareError
from ..domain.models import Appointment
from ..domain.slot_generator import SlotGenerator
from ..schemas import (
    AppointmentCreate,
    AvailabilityCreate,
    IntervalRequest,
    MatchRequestSchema,
    PatientCreate,
    PractitionerCreate,
    ResourceCreate,
)
from ..services.booking import BookingService
from ..services.scheduling import SchedulingService

app = typer.Typer(
    name="syncare",
    help="Book appointments and find free slots for care practitioners",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]

CONFLICT_EXIT_CODE = 2


class CliState:
    """Loaded configuration plus the store and services built from it."""

    def __init__(self, config_file: Optional[Path]):
        if config_file is not None:
            self.config = AppConfig.load_from_yaml(config_file)
            base_dir = config_file.parent
        else:
            default_path = get_default_config_path()
            self.config = AppConfig.load_or_default(default_path)
            base_dir = default_path.parent if default_path.exists() else Path.cwd()

        _configure_logging(self.config.log_level)

        self.tz = self.config.timezone
        self.store = JsonRecordStore(self.config.resolve_store_path(base_dir))
        self.scheduling = SchedulingService(
            self.store,
            slot_generator=SlotGenerator(step_minutes=self.config.defaults.step_minutes),
            default_limit=self.config.defaults.limit,
            default_window_days=self.config.defaults.window_days,
        )
        self.booking = BookingService(self.store, self.scheduling)

    def validation_context(self) -> dict:
        return {"timezone": self.tz}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(1)


def _open(config_file: Optional[Path]) -> CliState:
    try:
        return CliState(config_file)
    except (SyncareError, ValueError, FileNotFoundError) as e:
        _fail(str(e))


def _format_time(appointment: Appointment, tz: str) -> Tuple[str, str]:
    start = appointment.interval.start.in_timezone(tz)
    end = appointment.interval.end.in_timezone(tz)
    return start.format("DD.MM.YYYY HH:mm"), end.format("HH:mm")


def _appointment_table(title: str, appointments: List[Appointment], tz: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Time")
    table.add_column("Patient")
    table.add_column("Practitioner")
    table.add_column("Resource", style="dim")
    table.add_column("Status")

    for appointment in appointments:
        start, end = _format_time(appointment, tz)
        status_style = "green" if appointment.is_active else "dim"
        table.add_row(
            str(appointment.id),
            f"{start}–{end}",
            str(appointment.patient_id),
            str(appointment.practitioner_id),
            str(appointment.resource_id) if appointment.resource_id is not None else "-",
            f"[{status_style}]{appointment.status.value}[/{status_style}]",
        )

    return table


def _report_conflicts(conflicts: List[Appointment], tz: str) -> None:
    console.print("[bold red]✗ Conflict:[/bold red] practitioner or resource already booked")
    console.print(_appointment_table("Conflicting appointments", conflicts, tz))
    raise typer.Exit(CONFLICT_EXIT_CODE)


@app.command()
def add_patient(
    first_name: Annotated[str, typer.Argument(help="First name")],
    last_name: Annotated[str, typer.Argument(help="Last name")],
    pathology: Annotated[Optional[str], typer.Option("--pathology", help="Pathology being treated")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-form notes")] = None,
    date_of_birth: Annotated[Optional[str], typer.Option("--dob", help="Date of birth (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
):
    """
    Register a patient.
    """
    ctx = _open(config_file)
    try:
        data = PatientCreate(
            first_name=first_name,
            last_name=last_name,
            pathology=pathology,
            notes=notes,
            date_of_birth=date_of_birth,
        )
        patient = ctx.store.create_patient(**data.model_dump())
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    console.print(f"[green]✓ Patient #{patient.id} created:[/green] {patient.full_name}")


@app.command()
def add_practitioner(
    full_name: Annotated[str, typer.Argument(help="Full name")],
    specialty: Annotated[Optional[str], typer.Option("--specialty", help="Specialty")] = None,
    config_file: ConfigOption = None,
):
    """
    Register a practitioner.
    """
    ctx = _open(config_file)
    try:
        data = PractitionerCreate(full_name=full_name, specialty=specialty)
        practitioner = ctx.store.create_practitioner(**data.model_dump())
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    console.print(f"[green]✓ Practitioner #{practitioner.id} created:[/green] {practitioner.full_name}")


@app.command()
def add_resource(
    name: Annotated[str, typer.Argument(help="Room or equipment name")],
    type: Annotated[Optional[str], typer.Option("--type", help="Resource type, e.g. room")] = None,
    config_file: ConfigOption = None,
):
    """
    Register a room or piece of equipment.
    """
    ctx = _open(config_file)
    try:
        data = ResourceCreate(name=name, type=type)
        resource = ctx.store.create_resource(**data.model_dump())
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    console.print(f"[green]✓ Resource #{resource.id} created:[/green] {resource.name}")


@app.command()
def add_availability(
    practitioner_id: Annotated[int, typer.Argument(help="Practitioner ID")],
    start: Annotated[str, typer.Argument(help="Start (ISO-8601, e.g. 2024-11-25T09:00)")],
    end: Annotated[str, typer.Argument(help="End (ISO-8601)")],
    config_file: ConfigOption = None,
):
    """
    Declare a window in which a practitioner can be booked.
    """
    ctx = _open(config_file)
    try:
        data = AvailabilityCreate.model_validate(
            {"practitioner_id": practitioner_id, "start": start, "end": end},
            context=ctx.validation_context(),
        )
        availability = ctx.store.create_availability(data.practitioner_id, data.interval)
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    console.print(
        f"[green]✓ Availability #{availability.id} added for practitioner "
        f"#{availability.practitioner_id}:[/green] {availability.interval}"
    )


@app.command()
def practitioners(config_file: ConfigOption = None):
    """
    List all practitioners.
    """
    ctx = _open(config_file)
    rows = ctx.store.list_practitioners()

    if not rows:
        console.print("[yellow]No practitioners registered.[/yellow]")
        return

    table = Table(title="Practitioners", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Specialty", style="dim")

    for practitioner in rows:
        table.add_row(str(practitioner.id), practitioner.full_name, practitioner.specialty or "-")

    console.print()
    console.print(table)
    console.print()


@app.command()
def patients(
    search: Annotated[Optional[str], typer.Option("--search", "-s", help="Filter by first or last name")] = None,
    config_file: ConfigOption = None,
):
    """
    List patients, optionally filtered by name.
    """
    ctx = _open(config_file)
    rows = ctx.store.search_patients(search) if search else ctx.store.list_patients()

    if not rows:
        console.print("[yellow]No patients found.[/yellow]")
        return

    table = Table(title="Patients", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Pathology", style="dim")

    for patient in rows:
        table.add_row(str(patient.id), patient.full_name, patient.pathology or "-")

    console.print()
    console.print(table)
    console.print()


@app.command()
def slots(
    practitioner_id: Annotated[int, typer.Argument(help="Practitioner ID")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Appointment duration in minutes")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Window start (ISO-8601). Defaults to now")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Window end (ISO-8601). Defaults to start + 14 days")] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", help="Maximum number of suggestions")] = None,
    config_file: ConfigOption = None,
):
    """
    Suggest free slots for a practitioner.

    Examples:

        syncare slots 1 --duration 30

        syncare slots 1 -d 45 --start 2024-11-25T08:00 --end 2024-11-29T18:00 -n 10
    """
    ctx = _open(config_file)
    try:
        request = MatchRequestSchema.model_validate(
            {
                "practitioner_id": practitioner_id,
                "duration_minutes": duration if duration is not None else ctx.config.defaults.duration_minutes,
                "window_start": start,
                "window_end": end,
                "limit": limit,
            },
            context=ctx.validation_context(),
        )
        candidates = ctx.scheduling.compute_free_slots(request.to_domain())
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    console.print()
    if not candidates:
        console.print(
            "[yellow]⚠ No free slots found.[/yellow]\n"
            "Try a longer window or a shorter duration."
        )
    else:
        console.print(f"[bold green]✓ {len(candidates)} free slot(s) found:[/bold green]\n")
        for candidate in candidates:
            console.print(f"  {candidate.format_display(ctx.tz)}")
    console.print()


@app.command()
def book(
    patient_id: Annotated[int, typer.Option("--patient", help="Patient ID")],
    practitioner_id: Annotated[int, typer.Option("--practitioner", help="Practitioner ID")],
    start: Annotated[str, typer.Option("--start", help="Start (ISO-8601)")],
    end: Annotated[str, typer.Option("--end", help="End (ISO-8601)")],
    resource_id: Annotated[Optional[int], typer.Option("--resource", help="Room or equipment ID")] = None,
    pathology: Annotated[Optional[str], typer.Option("--pathology", help="Pathology being treated")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-form notes")] = None,
    config_file: ConfigOption = None,
):
    """
    Book an appointment. Exits with code 2 when it would double-book.
    """
    ctx = _open(config_file)
    try:
        data = AppointmentCreate.model_validate(
            {
                "patient_id": patient_id,
                "practitioner_id": practitioner_id,
                "resource_id": resource_id,
                "pathology": pathology,
                "notes": notes,
                "start": start,
                "end": end,
            },
            context=ctx.validation_context(),
        )
        result = ctx.booking.book(
            patient_id=data.patient_id,
            practitioner_id=data.practitioner_id,
            interval=data.interval,
            resource_id=data.resource_id,
            pathology=data.pathology,
            notes=data.notes,
        )
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    if not result.accepted:
        _report_conflicts(result.conflicts, ctx.tz)

    start_str, end_str = _format_time(result.appointment, ctx.tz)
    console.print(f"[green]✓ Appointment #{result.appointment.id} booked:[/green] {start_str} - {end_str}")


@app.command()
def cancel(
    appointment_id: Annotated[int, typer.Argument(help="Appointment ID")],
    config_file: ConfigOption = None,
):
    """
    Cancel an appointment. The record is kept for history.
    """
    ctx = _open(config_file)
    try:
        appointment = ctx.booking.cancel(appointment_id)
    except SyncareError as e:
        _fail(str(e))

    console.print(f"[green]✓ Appointment #{appointment.id} is {appointment.status.value}.[/green]")


@app.command()
def reschedule(
    appointment_id: Annotated[int, typer.Argument(help="Appointment ID")],
    start: Annotated[str, typer.Argument(help="New start (ISO-8601)")],
    end: Annotated[str, typer.Argument(help="New end (ISO-8601)")],
    config_file: ConfigOption = None,
):
    """
    Move an appointment: the old one is cancelled and a new one booked.
    """
    ctx = _open(config_file)
    try:
        data = IntervalRequest.model_validate(
            {"start": start, "end": end},
            context=ctx.validation_context(),
        )
        result = ctx.booking.reschedule(appointment_id, data.interval)
    except (SyncareError, ValidationError) as e:
        _fail(str(e))

    if not result.accepted:
        _report_conflicts(result.conflicts, ctx.tz)

    start_str, end_str = _format_time(result.appointment, ctx.tz)
    console.print(
        f"[green]✓ Appointment #{appointment_id} moved to #{result.appointment.id}:[/green] "
        f"{start_str} - {end_str}"
    )


@app.command()
def appointments(
    practitioner_id: Annotated[Optional[int], typer.Option("--practitioner", help="Filter by practitioner ID")] = None,
    patient_id: Annotated[Optional[int], typer.Option("--patient", help="Filter by patient ID")] = None,
    config_file: ConfigOption = None,
):
    """
    List appointments, cancelled ones included.
    """
    ctx = _open(config_file)
    rows = ctx.store.list_appointments(practitioner_id=practitioner_id, patient_id=patient_id)

    if not rows:
        console.print("[yellow]No appointments found.[/yellow]")
        return

    console.print()
    console.print(_appointment_table("Appointments", rows, ctx.tz))
    console.print()


@app.command()
def notifications(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of notifications to show")] = 50,
    mark_read: Annotated[bool, typer.Option("--mark-read", help="Mark the shown notifications as read")] = False,
    config_file: ConfigOption = None,
):
    """
    Show the latest notifications.
    """
    ctx = _open(config_file)
    rows = ctx.store.list_notifications(limit=limit)

    if not rows:
        console.print("[yellow]No notifications.[/yellow]")
        return

    for notification in rows:
        marker = " " if notification.read else "•"
        console.print(f" {marker} [dim]{notification.created_at}[/dim] ({notification.kind}) {notification.message}")
        if mark_read and not notification.read:
            ctx.store.mark_notification_read(notification.id)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]syncare[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
