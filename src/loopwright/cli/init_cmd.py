"""loopwright init -- Initialize a .loopwright/ project directory.

Creates the directory structure, a config template, an empty credentials file
and one sample automation so ``loopwright run`` has something to execute.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

console = Console()

_SAMPLE_CONFIG = """\
# Loopwright project configuration

# community | enterprise (enterprise unlocks file system, command and data steps)
edition: community

# Default execution mode for interactive runs
headless: true

# chromium | firefox | webkit
browser: chromium

viewport:
  width: 1280
  height: 720

navigation_timeout_ms: 30000

# Outbound HTTP timeout (seconds)
http_timeout: 30
"""

_SAMPLE_CREDENTIALS = """\
# Credentials referenced by steps via credentialId.
# Keep this file out of version control.
credentials: []
#  - id: slack-bot
#    type: slack
#    data:
#      token: xoxb-...
"""

_SAMPLE_AUTOMATION = {
    "id": "sample",
    "name": "Sample: page title",
    "headless": True,
    "enabled": True,
    "schedule": {"type": "manual"},
    "variables": {},
    "nodes": [
        {"id": "1", "type": "automationStep", "data": {"step": {"type": "navigate", "value": "https://example.com"}}},
        {
            "id": "2",
            "type": "automationStep",
            "data": {"step": {"type": "extract", "selector": "h1", "storeKey": "title"}},
        },
        {
            "id": "3",
            "type": "automationStep",
            "data": {
                "step": {
                    "type": "variableConditional",
                    "variableConditionType": "variableContains",
                    "variableName": "title",
                    "expectedValue": "Example",
                }
            },
        },
        {
            "id": "4",
            "type": "automationStep",
            "data": {"step": {"type": "setVariable", "variableName": "status", "value": "found"}},
        },
        {
            "id": "5",
            "type": "automationStep",
            "data": {"step": {"type": "setVariable", "variableName": "status", "value": "missing"}},
        },
    ],
    "edges": [
        {"id": "e1-2", "source": "1", "target": "2"},
        {"id": "e2-3", "source": "2", "target": "3"},
        {"id": "e3-4", "source": "3", "target": "4", "sourceHandle": "if"},
        {"id": "e3-5", "source": "3", "target": "5", "sourceHandle": "else"},
    ],
}

_SUBDIRS = ["automations", "schedules", "logs"]


def init(
    dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Parent directory for .loopwright/ project. Defaults to current directory.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing .loopwright/ directory.",
    ),
) -> None:
    """Initialize a new Loopwright project directory."""
    project_dir = dir.resolve() / ".loopwright"

    if project_dir.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Directory already exists:[/yellow] {project_dir}\n\nUse [bold]--force[/bold] to overwrite.",
                title="Already Initialized",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=2)

    for sub in _SUBDIRS:
        (project_dir / sub).mkdir(parents=True, exist_ok=True)

    (project_dir / "config.yaml").write_text(_SAMPLE_CONFIG, encoding="utf-8")
    credentials_path = project_dir / "credentials.yaml"
    if not credentials_path.exists():
        credentials_path.write_text(_SAMPLE_CREDENTIALS, encoding="utf-8")
    (project_dir / "automations" / "tree_sample.json").write_text(
        json.dumps(_SAMPLE_AUTOMATION, indent=2), encoding="utf-8"
    )

    # Credentials must not be committed
    gitignore_path = project_dir.parent / ".gitignore"
    entry = ".loopwright/credentials.yaml"
    if gitignore_path.exists():
        existing = gitignore_path.read_text(encoding="utf-8")
        if entry not in existing:
            gitignore_path.write_text(existing.rstrip("\n") + f"\n\n# Loopwright credentials\n{entry}\n", encoding="utf-8")
    else:
        gitignore_path.write_text(f"# Loopwright credentials\n{entry}\n", encoding="utf-8")

    tree = Tree(f"[bold green]{project_dir}[/bold green]", guide_style="dim")
    tree.add("[cyan]config.yaml[/cyan]")
    tree.add("[cyan]credentials.yaml[/cyan]")
    for sub in _SUBDIRS:
        branch = tree.add(f"[blue]{sub}/[/blue]")
        for child in sorted((project_dir / sub).iterdir()):
            if child.is_file():
                branch.add(f"[dim]{child.name}[/dim]")

    console.print()
    console.print(Panel(tree, title="[bold green]Loopwright Initialized[/bold green]", border_style="green"))
    console.print()
    console.print("[dim]Next steps:[/dim]")
    console.print("  1. Run [bold]playwright install chromium[/bold] once for browser steps")
    console.print("  2. Try [bold]loopwright run sample[/bold]")
    console.print("  3. Add a schedule with [bold]loopwright schedules add sample --interval 30[/bold]")
