"""Loopwright CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from loopwright import __version__

BANNER = r"""
  _                                _       _     _
 | |    ___   ___  _ ____      ___ __(_) __ _| |__ | |_
 | |   / _ \ / _ \| '_ \ \ /\ / / '__| |/ _` | '_ \| __|
 | |__| (_) | (_) | |_) \ V  V /| |  | | (_| | | | | |_
 |_____\___/ \___/| .__/ \_/\_/ |_|  |_|\__, |_| |_|\__|
                  |_|                   |___/
"""

TAGLINE = "Graph-driven browser and API automations, on demand or on a schedule."

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(BANNER, style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        console.print(f"  v{__version__}\n", style="bold")
        raise typer.Exit()


app = typer.Typer(
    name="loopwright",
    help=f"{BANNER}\n{TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show Loopwright version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """Loopwright -- run automation graphs headless or windowed."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s  %(message)s",
    )


# ── Register subcommands ──────────────────────────────────────────────────

from loopwright.cli.init_cmd import init  # noqa: E402
from loopwright.cli.logs import logs  # noqa: E402
from loopwright.cli.run import run  # noqa: E402
from loopwright.cli.schedules import schedules_app  # noqa: E402
from loopwright.cli.serve import serve  # noqa: E402
from loopwright.cli.validate import validate  # noqa: E402

app.command(name="init", help="Initialize a .loopwright/ project directory.")(init)
app.command(name="run", help="Run an automation once.")(run)
app.command(name="validate", help="Check automation graphs without running them.")(validate)
app.command(name="logs", help="Show recent execution logs for an automation.")(logs)
app.command(name="serve", help="Arm stored schedules and run until interrupted.")(serve)
app.add_typer(schedules_app, name="schedules", help="List and manage automation schedules.")
