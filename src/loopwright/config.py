"""Loopwright configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from loopwright.errors import LoopwrightError
from loopwright.models import (
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_VIEWPORT,
    EDITIONS,
)

_BROWSERS = ("chromium", "firefox", "webkit")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class LoopwrightConfigError(LoopwrightError):
    """Raised when configuration is invalid or missing."""

    pass


def _number(data: dict[str, Any], key: str, kind: type, default: Any = None) -> Any:
    raw = data.get(key, default)
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise LoopwrightConfigError(
            f"Invalid value for {key}: {raw!r} (expected a number)\n\n"
            f"To fix: set {key} to a number in config.yaml"
        ) from exc


@dataclass
class LoopwrightConfig:
    """Configuration for a Loopwright project."""

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(".loopwright"))
    automations_dir: Path = field(default_factory=lambda: Path(".loopwright/automations"))
    schedules_dir: Path = field(default_factory=lambda: Path(".loopwright/schedules"))
    logs_dir: Path = field(default_factory=lambda: Path(".loopwright/logs"))
    credentials_file: Path = field(default_factory=lambda: Path(".loopwright/credentials.yaml"))

    # Behavior
    edition: str = "community"
    headless: bool = True
    browser: str = "chromium"
    viewport: tuple[int, int] = DEFAULT_VIEWPORT
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @property
    def is_enterprise(self) -> bool:
        return self.edition == "enterprise"

    @classmethod
    def from_file(cls, config_path: Path) -> LoopwrightConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise LoopwrightConfigError(f"Config file not found: {config_path}\n\nTo fix: loopwright init")
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise LoopwrightConfigError(f"Config file must contain a mapping: {config_path}")
        config = cls._from_dict(data, config_path.parent)
        config.apply_env_overrides()
        return config

    @classmethod
    def for_project(cls, project_dir: Path) -> LoopwrightConfig:
        """Load <project_dir>/config.yaml if present, otherwise defaults rooted at project_dir."""
        config_path = project_dir / "config.yaml"
        if config_path.exists():
            return cls.from_file(config_path)
        config = cls._from_dict({}, project_dir)
        config.apply_env_overrides()
        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> LoopwrightConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        config.automations_dir = project_dir / data.get("automations_dir", "automations")
        config.schedules_dir = project_dir / data.get("schedules_dir", "schedules")
        config.logs_dir = project_dir / data.get("logs_dir", "logs")
        config.credentials_file = project_dir / data.get("credentials_file", "credentials.yaml")

        if "edition" in data:
            config.edition = str(data["edition"]).lower()
        if "headless" in data:
            config.headless = bool(data["headless"])
        if "browser" in data:
            config.browser = str(data["browser"]).lower()
        if "navigation_timeout_ms" in data:
            config.navigation_timeout_ms = _number(data, "navigation_timeout_ms", int)
        if "http_timeout" in data:
            config.http_timeout = _number(data, "http_timeout", float)
        if "viewport" in data:
            vp = data["viewport"]
            if isinstance(vp, dict):
                config.viewport = (
                    _number(vp, "width", int, DEFAULT_VIEWPORT[0]),
                    _number(vp, "height", int, DEFAULT_VIEWPORT[1]),
                )

        config.validate()
        return config

    def apply_env_overrides(self) -> None:
        """Apply LOOPWRIGHT_EDITION / LOOPWRIGHT_HEADLESS from the environment."""
        if edition := os.environ.get("LOOPWRIGHT_EDITION"):
            self.edition = edition.strip().lower()
        if headless := os.environ.get("LOOPWRIGHT_HEADLESS"):
            value = headless.strip().lower()
            if value in _TRUTHY:
                self.headless = True
            elif value in _FALSY:
                self.headless = False
            else:
                raise LoopwrightConfigError(
                    f"Invalid LOOPWRIGHT_HEADLESS value: {headless!r} (expected true/false)"
                )
        self.validate()

    def validate(self) -> None:
        if self.edition not in EDITIONS:
            raise LoopwrightConfigError(
                f"Unknown edition: {self.edition}\n\nExpected one of: {', '.join(EDITIONS)}"
            )
        if self.browser not in _BROWSERS:
            raise LoopwrightConfigError(
                f"Unknown browser: {self.browser}\n\nExpected one of: {', '.join(_BROWSERS)}"
            )
        if self.navigation_timeout_ms <= 0 or self.http_timeout <= 0:
            raise LoopwrightConfigError("Timeouts must be positive numbers")

    def ensure_dirs(self) -> None:
        for directory in (self.automations_dir, self.schedules_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def resolve_automation(self, ref: str) -> Path:
        """Resolve an automation reference (file path or stored id) to a file path."""
        candidate = Path(ref)
        if candidate.suffix == ".json" and candidate.exists():
            return candidate
        stored = self.automations_dir / f"tree_{ref}.json"
        if stored.exists():
            return stored
        raise LoopwrightConfigError(
            f"Automation not found: {ref}\n\n"
            f"Expected file: {stored}\n"
            "To fix: pass a path to an automation JSON file or a stored automation id"
        )
