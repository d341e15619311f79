"""Helpers shared by the CLI commands: project discovery, config, stores."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from loopwright.config import LoopwrightConfig, LoopwrightConfigError
from loopwright.credentials import FileCredentialLookup
from loopwright.engine.runner import AutomationRunner
from loopwright.scheduler import Scheduler
from loopwright.stores import AutomationStore, ExecutionLogStore, ScheduleStore

PROJECT_DIR_NAME = ".loopwright"


def find_project_dir() -> Path:
    """Locate the .loopwright/ project directory by searching upward from cwd."""
    current = Path.cwd()
    for base in [current, *current.parents]:
        candidate = base / PROJECT_DIR_NAME
        if candidate.is_dir():
            return candidate
    return current / PROJECT_DIR_NAME


def print_error(console: Console, message: str, title: str = "Error") -> None:
    console.print(Panel(f"[red]{message}[/red]", title=f"[red]{title}[/red]", border_style="red"))


def load_config(console: Console, project_dir: Path | None) -> LoopwrightConfig:
    """Load the project config or exit with code 2."""
    try:
        config = LoopwrightConfig.for_project(project_dir or find_project_dir())
    except LoopwrightConfigError as exc:
        print_error(console, str(exc), "Config Error")
        raise typer.Exit(code=2)
    return config


def build_scheduler(config: LoopwrightConfig) -> Scheduler:
    config.ensure_dirs()
    runner = AutomationRunner(config=config, credentials=FileCredentialLookup(config.credentials_file))
    return Scheduler(
        automations=AutomationStore(config.automations_dir),
        schedules=ScheduleStore(config.schedules_dir),
        logs=ExecutionLogStore(config.logs_dir),
        runner=runner,
    )
