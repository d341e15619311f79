"""loopwright schedules -- Manage persisted schedules.

Subcommands: list, add, remove, enable, disable.
These edit the schedule files only; ``loopwright serve`` arms the timers.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from loopwright.cli.project import load_config, print_error
from loopwright.engine.graph import parse_schedule
from loopwright.errors import ScheduleError
from loopwright.scheduler import CroniterEngine, parse_once_datetime
from loopwright.stores import AutomationStore, ScheduleRecord, ScheduleStore

console = Console()

schedules_app = typer.Typer(
    name="schedules",
    help="List and manage automation schedules.",
    no_args_is_help=True,
)

_DIR_OPTION = typer.Option(None, "--dir", "-d", help="Path to .loopwright/ directory.")


def _describe(record: ScheduleRecord) -> str:
    spec = record.schedule.to_dict() if record.schedule else {"type": "manual"}
    kind = spec.get("type")
    if kind == "interval":
        return f"every {spec['interval']:g} {spec['unit']}"
    if kind == "cron":
        return f"cron {spec['expression']}"
    if kind == "once":
        return f"once at {spec['datetime']}"
    return "manual"


@schedules_app.command(name="list")
def schedules_list(dir: Path | None = _DIR_OPTION) -> None:
    """Show all persisted schedules."""
    config = load_config(console, dir)
    records = ScheduleStore(config.schedules_dir).list()
    if not records:
        console.print("[dim]No schedules.[/dim]")
        return
    table = Table(title="Schedules", show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Automation")
    table.add_column("When")
    table.add_column("Mode")
    table.add_column("Enabled")
    for record in records:
        table.add_row(
            record.id,
            f"{record.automation_name or '?'} [dim]({record.automation_id})[/dim]",
            _describe(record),
            "headless" if record.headless else "windowed",
            "[green]yes[/green]" if record.enabled else "[red]no[/red]",
        )
    console.print(table)


@schedules_app.command(name="add")
def schedules_add(
    automation_id: str = typer.Argument(..., help="Stored automation id."),
    interval: float | None = typer.Option(None, "--interval", help="Repeat every N units."),
    unit: str = typer.Option("minutes", "--unit", help="Interval unit: minutes, hours, days."),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression (five or six fields)."),
    at: str | None = typer.Option(None, "--at", help="Run once at this ISO 8601 time."),
    headless: bool = typer.Option(True, "--headless/--windowed", help="Execution mode for scheduled runs."),
    dir: Path | None = _DIR_OPTION,
) -> None:
    """Create a schedule for a stored automation."""
    config = load_config(console, dir)
    chosen = [opt for opt in (interval, cron, at) if opt is not None]
    if len(chosen) != 1:
        print_error(console, "Pass exactly one of --interval, --cron or --at", "Usage Error")
        raise typer.Exit(code=2)

    automation = AutomationStore(config.automations_dir).load(automation_id)
    if automation is None:
        print_error(console, f"Automation not found: {automation_id}", "Schedule Error")
        raise typer.Exit(code=2)

    if interval is not None:
        raw = {"type": "interval", "interval": interval, "unit": unit}
    elif cron is not None:
        raw = {"type": "cron", "expression": cron}
    else:
        raw = {"type": "once", "datetime": at}

    try:
        spec = parse_schedule(raw)
        if cron is not None:
            CroniterEngine().validate(cron)
        if at is not None:
            parse_once_datetime(at)
    except ScheduleError as exc:
        print_error(console, str(exc), "Schedule Error")
        raise typer.Exit(code=2)

    record = ScheduleRecord(
        id=f"schedule_{int(time.time() * 1000)}",
        automation_id=automation.id,
        automation_name=automation.name,
        schedule=spec,
        headless=headless,
    )
    config.ensure_dirs()
    ScheduleStore(config.schedules_dir).save(record)
    console.print(f"[green]Created schedule[/green] [cyan]{record.id}[/cyan]: {_describe(record)}")


@schedules_app.command(name="remove")
def schedules_remove(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    dir: Path | None = _DIR_OPTION,
) -> None:
    """Delete a schedule."""
    config = load_config(console, dir)
    if not ScheduleStore(config.schedules_dir).delete(schedule_id):
        print_error(console, f"Schedule not found: {schedule_id}")
        raise typer.Exit(code=1)
    console.print(f"[green]Removed schedule[/green] {schedule_id}")


def _set_enabled(schedule_id: str, enabled: bool, dir: Path | None) -> None:
    config = load_config(console, dir)
    if not ScheduleStore(config.schedules_dir).update(schedule_id, enabled=enabled):
        print_error(console, f"Schedule not found: {schedule_id}")
        raise typer.Exit(code=1)
    console.print(f"Schedule {schedule_id} {'[green]enabled[/green]' if enabled else '[yellow]disabled[/yellow]'}")


@schedules_app.command(name="enable")
def schedules_enable(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    dir: Path | None = _DIR_OPTION,
) -> None:
    """Enable a schedule."""
    _set_enabled(schedule_id, True, dir)


@schedules_app.command(name="disable")
def schedules_disable(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    dir: Path | None = _DIR_OPTION,
) -> None:
    """Disable a schedule without deleting it."""
    _set_enabled(schedule_id, False, dir)
