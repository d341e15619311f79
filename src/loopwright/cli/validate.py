"""loopwright validate -- Check an automation graph without running it.

Reports unknown step types, malformed records, dropped edges, branch-label
problems and a missing start node. Nothing is executed and no network calls
are made.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from loopwright.engine.graph import Automation, validate_automation
from loopwright.engine.graph_executor import find_start_nodes
from loopwright.errors import LoopwrightError

console = Console(stderr=True)


def _sev_style(severity: str) -> str:
    return {"error": "bold red", "warning": "yellow", "info": "dim"}.get(severity, "")


def collect_issues(path: Path) -> list[dict[str, Any]]:
    """Validate one automation file. Returns a list of issue dicts."""
    issues: list[dict[str, Any]] = []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return [{"severity": "error", "message": f"JSON parse error: {exc}"}]

    try:
        automation = Automation.from_dict(data)
    except LoopwrightError as exc:
        return [{"severity": "error", "message": str(exc)}]

    if not automation.nodes:
        issues.append({"severity": "error", "message": "Automation has no nodes"})
        return issues

    for problem in validate_automation(automation):
        severity = "warning" if "ignored" in problem or "never followed" in problem else "error"
        issues.append({"severity": severity, "message": problem})

    try:
        starts = find_start_nodes(automation)
    except LoopwrightError as exc:
        issues.append({"severity": "error", "message": str(exc)})
    else:
        ids = ", ".join(node.id for node in starts)
        issues.append({"severity": "info", "message": f"Start node(s): {ids}"})

    if automation.needs_browser():
        issues.append({"severity": "info", "message": "Automation uses browser steps"})
    return issues


def validate(
    files: list[Path] = typer.Argument(..., help="Automation JSON file(s) to validate."),
) -> None:
    """Validate automation files."""
    total_errors = 0
    for path in files:
        issues = collect_issues(path)
        errors = [i for i in issues if i["severity"] == "error"]
        total_errors += len(errors)

        table = Table(show_header=True, header_style="bold", box=None)
        table.add_column("Severity", width=8)
        table.add_column("Message")
        for issue in issues:
            table.add_row(f"[{_sev_style(issue['severity'])}]{issue['severity']}[/]", issue["message"])

        border = "red" if errors else "green"
        title = f"[{border}]{path.name}[/{border}]"
        console.print(Panel(table, title=title, border_style=border))

    if total_errors:
        console.print(f"[bold red]{total_errors} error(s) found[/bold red]")
        raise typer.Exit(code=1)
    console.print("[bold green]All automations valid[/bold green]")
