"""loopwright logs -- Show recent execution log entries for an automation."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from loopwright.cli.project import load_config
from loopwright.models import DEFAULT_LOG_LIMIT
from loopwright.stores import ExecutionLogStore

console = Console()


def logs(
    automation_id: str = typer.Argument(..., help="Automation id."),
    limit: int = typer.Option(DEFAULT_LOG_LIMIT, "--limit", "-n", help="Number of entries to show."),
    dir: Path | None = typer.Option(None, "--dir", "-d", help="Path to .loopwright/ directory."),
) -> None:
    """Show the most recent runs of an automation, newest first."""
    config = load_config(console, dir)
    entries = ExecutionLogStore(config.logs_dir).recent(automation_id, limit)
    if not entries:
        console.print(f"[dim]No execution logs for {automation_id}.[/dim]")
        return

    table = Table(title=f"Runs of {entries[0].get('automationName') or automation_id}")
    table.add_column("Timestamp")
    table.add_column("Result")
    table.add_column("Nodes", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Error", overflow="fold")
    for entry in entries:
        result = "[green]success[/green]" if entry.get("success") else "[red]failed[/red]"
        table.add_row(
            str(entry.get("timestamp", "")),
            result,
            f"{entry.get('stepsSucceeded', 0)}/{entry.get('stepsExecuted', 0)}",
            f"{int(entry.get('duration') or 0) / 1000:.1f}s",
            str(entry.get("error") or ""),
        )
    console.print(table)
