"""CLI commands for MediBook."""

import asyncio
import uuid
from datetime import date
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from medibook.config import get_settings
from medibook.core.models import AppointmentStatus, ProfileRole

app = typer.Typer(
    name="medibook",
    help="Clinic appointment scheduling service",
    add_completion=False,
)
console = Console()

_STATUS_STYLES = {
    AppointmentStatus.pending.value: "yellow",
    AppointmentStatus.confirmed.value: "green",
    AppointmentStatus.rejected.value: "red",
    AppointmentStatus.cancelled.value: "dim",
    AppointmentStatus.completed.value: "blue",
}


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind to"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting MediBook API server on {host}:{port}")
    uvicorn.run(
        "medibook.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command("init-db")
def init_db_command():
    """Create tables and seed the default departments."""
    from medibook.core.database import init_db

    asyncio.run(init_db())
    console.print(f"[green]Database initialized:[/green] {get_settings().database_url}")


async def _fetch_appointments(
    doctor_id: Optional[uuid.UUID],
    status: Optional[str],
    date_from: Optional[date],
    limit: int,
):
    from medibook.core.database import get_session_factory
    from medibook.core.repository import AppointmentRepository

    async with get_session_factory()() as session:
        return await AppointmentRepository(session).list(
            doctor_id=doctor_id,
            status=status,
            date_from=date_from,
            limit=limit,
        )


@app.command()
def appointments(
    doctor: Optional[str] = typer.Option(None, "--doctor", "-d", help="Doctor id"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    date_from: Optional[str] = typer.Option(None, "--from", help="Earliest date (YYYY-MM-DD)"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows"),
):
    """List appointments (operator view, no access filtering)."""
    try:
        doctor_id = uuid.UUID(doctor) if doctor else None
    except ValueError:
        console.print(f"[red]Invalid doctor id: {doctor}[/red]")
        raise typer.Exit(1)

    if status is not None:
        try:
            status = AppointmentStatus(status).value
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            raise typer.Exit(1)

    try:
        start = date.fromisoformat(date_from) if date_from else None
    except ValueError:
        console.print(f"[red]Invalid date: {date_from}[/red]")
        raise typer.Exit(1)

    rows = asyncio.run(_fetch_appointments(doctor_id, status, start, limit))
    if not rows:
        console.print("[yellow]No appointments found.[/yellow]")
        return

    table = Table(title="Appointments")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Doctor")
    table.add_column("Patient")
    table.add_column("Status")
    for appt in rows:
        style = _STATUS_STYLES.get(appt.status, "white")
        table.add_row(
            str(appt.appointment_date),
            appt.appointment_time.strftime("%H:%M"),
            str(appt.doctor_id)[:8],
            str(appt.patient_id)[:8],
            f"[{style}]{appt.status}[/{style}]",
        )
    console.print(table)


@app.command()
def token(
    profile_id: str = typer.Argument(..., help="Profile id to issue the token for"),
    role: str = typer.Option("patient", "--role", "-r", help="patient, doctor or admin"),
    minutes: Optional[int] = typer.Option(None, "--minutes", "-m", help="Lifetime in minutes"),
):
    """Mint a development caller token."""
    from medibook.core.auth import create_access_token

    try:
        uuid.UUID(profile_id)
        ProfileRole(role)
    except ValueError:
        console.print("[red]Profile id must be a UUID and role one of patient, doctor, admin[/red]")
        raise typer.Exit(1)

    typer.echo(create_access_token(profile_id, role, expires_minutes=minutes))


@app.command()
def version():
    """Show version information."""
    from medibook import __version__

    console.print(f"MediBook v{__version__}")
