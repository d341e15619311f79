"""loopwright serve -- Arm every stored schedule and run until interrupted."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from loopwright.cli.project import build_scheduler, load_config

console = Console(stderr=True)


async def _serve(scheduler) -> None:
    armed = scheduler.activate_stored()
    console.print(f"[bold cyan]Loopwright scheduler running[/bold cyan] -- {armed} schedule(s) armed. Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.shutdown()


def serve(
    dir: Path | None = typer.Option(None, "--dir", "-d", help="Path to .loopwright/ directory."),
) -> None:
    """Activate stored schedules and keep firing them."""
    config = load_config(console, dir)
    scheduler = build_scheduler(config)
    try:
        asyncio.run(_serve(scheduler))
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped[/yellow]")
