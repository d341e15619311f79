"""loopwright run -- Execute one automation and show per-node progress.

Accepts a path to an automation JSON file or the id of a stored automation.
Exit codes: 0 success, 1 run failed, 2 configuration problem, 3 infrastructure error.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from loopwright.cli.project import load_config, print_error
from loopwright.credentials import FileCredentialLookup
from loopwright.engine.graph import Automation
from loopwright.engine.graph_executor import RunResult
from loopwright.engine.runner import AutomationRunner
from loopwright.engine.variables import parse_value
from loopwright.errors import LoopwrightError

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("loopwright.cli.run")

_STATUS_STYLE = {
    "running": "[dim]...[/dim]",
    "success": "[bold green]✓[/bold green]",
    "error": "[bold red]✗[/bold red]",
}


def _parse_vars(pairs: list[str]) -> dict[str, object]:
    variables: dict[str, object] = {}
    for pair in pairs:
        if "=" not in pair:
            print_error(console, f"Invalid --var value: {pair}\n\nExpected format: NAME=VALUE", "Usage Error")
            raise typer.Exit(code=2)
        key, _, raw = pair.partition("=")
        variables[key.strip()] = parse_value(raw)
    return variables


def _print_summary(automation: Automation, result: RunResult) -> None:
    if result.success:
        border = "green"
        verdict = "[bold green]RUN SUCCEEDED[/bold green]"
    elif result.stopped:
        border = "yellow"
        verdict = "[bold yellow]RUN STOPPED[/bold yellow]"
    else:
        border = "red"
        verdict = "[bold red]RUN FAILED[/bold red]"

    lines = [
        verdict,
        "",
        f"  Automation: {automation.name or automation.id}",
        f"  Nodes:      {result.steps_succeeded}/{result.steps_executed} succeeded",
        f"  Visits:     {result.visits}",
        f"  Duration:   {result.duration_ms / 1000:.1f}s",
    ]
    if result.error:
        lines.append(f"  Error:      [red]{result.error}[/red]")
    console.print()
    console.print(Panel("\n".join(lines), border_style=border))


def run(
    automation_ref: str = typer.Argument(..., help="Automation JSON file or stored automation id."),
    headless: bool | None = typer.Option(
        None,
        "--headless/--windowed",
        help="Browser mode for this run. Defaults to the project's headless setting.",
    ),
    var: list[str] = typer.Option(
        [],
        "--var",
        help="Seed a variable (NAME=VALUE). Repeatable.",
    ),
    dir: Path | None = typer.Option(
        None,
        "--dir",
        "-d",
        help="Path to .loopwright/ directory.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the run result as JSON on stdout.",
    ),
) -> None:
    """Run an automation once."""
    config = load_config(console, dir)
    variables = _parse_vars(var)

    try:
        path = config.resolve_automation(automation_ref)
        automation = Automation.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (LoopwrightError, ValueError, OSError) as exc:
        print_error(console, str(exc), "Automation Error")
        raise typer.Exit(code=2)

    nodes = automation.node_map()

    def on_status(node_id: str, status: str, message: str | None) -> None:
        if status == "running":
            return
        label = nodes[node_id].label if node_id in nodes else "?"
        console.print(f"  {_STATUS_STYLE.get(status, status)} {node_id} [dim]{label}[/dim]")
        if message:
            console.print(f"    [dim red]{message}[/dim red]")

    mode_headless = config.headless if headless is None else headless
    runner = AutomationRunner(config=config, credentials=FileCredentialLookup(config.credentials_file))
    try:
        result = asyncio.run(
            runner.run(automation, headless=mode_headless, variables=variables, on_status=on_status)
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=1)
    except LoopwrightError as exc:
        print_error(console, str(exc), "Run Error")
        raise typer.Exit(code=2)
    except Exception as exc:
        logger.exception("Unexpected error during run")
        print_error(
            console,
            f"Unexpected error: {exc}\n\nRun with [bold]--verbose[/bold] for full traceback.",
            "Infrastructure Error",
        )
        raise typer.Exit(code=3)

    if json_output:
        output_console.print_json(
            data={
                "success": result.success,
                "error": result.error,
                "stepsExecuted": result.steps_executed,
                "stepsSucceeded": result.steps_succeeded,
                "visits": result.visits,
                "duration": result.duration_ms,
                "variables": result.variables,
            },
            default=str,
        )
    else:
        _print_summary(automation, result)

    if not result.success:
        raise typer.Exit(code=1)
