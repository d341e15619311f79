"""Loopwright Stores -- JSON documents on disk.

- automations: one ``tree_{id}.json`` per automation, overwritten on save
- schedules:   one ``{id}.json`` per schedule record
- logs:        one ``{automationId}_{epochMillis}.json`` per run, never rewritten
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loopwright.engine.graph import Automation, ScheduleSpec, parse_schedule
from loopwright.errors import GraphConfigurationError, LoopwrightError
from loopwright.models import DEFAULT_LOG_LIMIT

logger = logging.getLogger("loopwright.stores")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    tmp.replace(path)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Automations
# ---------------------------------------------------------------------------


class AutomationStore:
    """Automation graphs stored as ``tree_{id}.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, automation_id: str) -> Path:
        return self.directory / f"tree_{automation_id}.json"

    def save(self, automation: Automation) -> Path:
        path = self.path_for(automation.id)
        _write_json(path, automation.to_dict())
        logger.info("Saved automation %s to %s", automation.id, path)
        return path

    def load(self, automation_id: str) -> Automation | None:
        path = self.path_for(automation_id)
        if not path.exists():
            return None
        return Automation.from_dict(_read_json(path))

    def list(self) -> list[Automation]:
        automations: list[Automation] = []
        if not self.directory.exists():
            return automations
        for path in sorted(self.directory.glob("tree_*.json")):
            try:
                automations.append(Automation.from_dict(_read_json(path)))
            except (OSError, ValueError, LoopwrightError) as exc:
                logger.warning("Skipping unreadable automation file %s: %s", path, exc)
        return automations

    def delete(self, automation_id: str) -> bool:
        path = self.path_for(automation_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted automation %s", automation_id)
        return True

    def import_file(self, path: Path) -> Automation:
        """Import an exported automation under a fresh id and save it."""
        try:
            data = _read_json(path)
        except (OSError, ValueError) as exc:
            raise GraphConfigurationError(f"Cannot import {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise GraphConfigurationError(f"Cannot import {path}: expected a JSON object")
        data = {**data, "id": str(int(time.time() * 1000))}
        automation = Automation.from_dict(data)
        self.save(automation)
        return automation

    def export_file(self, automation: Automation, path: Path) -> Path:
        _write_json(path, automation.to_dict())
        return path


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class ScheduleRecord:
    """Persisted schedule: ``{id, workflowId, workflowName, schedule, enabled, headless, createdAt}``."""

    id: str
    automation_id: str
    automation_name: str = ""
    schedule: ScheduleSpec | None = None
    enabled: bool = True
    headless: bool = True
    created_at: str = dataclasses.field(default_factory=_now_iso)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleRecord:
        return cls(
            id=str(data["id"]),
            automation_id=str(data.get("workflowId", "")),
            automation_name=str(data.get("workflowName") or ""),
            schedule=parse_schedule(data.get("schedule")),
            enabled=bool(data.get("enabled", True)),
            headless=bool(data.get("headless", True)),
            created_at=str(data.get("createdAt") or _now_iso()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.automation_id,
            "workflowName": self.automation_name,
            "schedule": self.schedule.to_dict() if self.schedule is not None else {"type": "manual"},
            "enabled": self.enabled,
            "headless": self.headless,
            "createdAt": self.created_at,
        }


class ScheduleStore:
    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, schedule_id: str) -> Path:
        return self.directory / f"{schedule_id}.json"

    def save(self, record: ScheduleRecord) -> Path:
        path = self._path(record.id)
        _write_json(path, record.to_dict())
        return path

    def load(self, schedule_id: str) -> ScheduleRecord | None:
        path = self._path(schedule_id)
        if not path.exists():
            return None
        return ScheduleRecord.from_dict(_read_json(path))

    def list(self) -> list[ScheduleRecord]:
        records: list[ScheduleRecord] = []
        if not self.directory.exists():
            return records
        for path in self.directory.glob("*.json"):
            try:
                records.append(ScheduleRecord.from_dict(_read_json(path)))
            except (OSError, ValueError, KeyError, LoopwrightError) as exc:
                logger.warning("Skipping unreadable schedule file %s: %s", path, exc)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def delete(self, schedule_id: str) -> bool:
        path = self._path(schedule_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def update(self, schedule_id: str, **changes: Any) -> bool:
        record = self.load(schedule_id)
        if record is None:
            return False
        for key, value in changes.items():
            if not hasattr(record, key):
                raise AttributeError(f"ScheduleRecord has no field {key!r}")
            setattr(record, key, value)
        self.save(record)
        return True

    def by_automation(self, automation_id: str) -> list[ScheduleRecord]:
        return [r for r in self.list() if r.automation_id == automation_id]


# ---------------------------------------------------------------------------
# Execution logs
# ---------------------------------------------------------------------------


class ExecutionLogStore:
    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def write(self, entry: dict[str, Any]) -> Path:
        automation_id = str(entry.get("automationId", "unknown"))
        millis = int(time.time() * 1000)
        path = self.directory / f"{automation_id}_{millis}.json"
        # Two runs finishing in the same millisecond must not collide
        while path.exists():
            millis += 1
            path = self.directory / f"{automation_id}_{millis}.json"
        _write_json(path, entry)
        return path

    def recent(self, automation_id: str, limit: int = DEFAULT_LOG_LIMIT) -> list[dict[str, Any]]:
        if not self.directory.exists():
            return []
        pattern = re.compile(rf"{re.escape(automation_id)}_(\d+)\.json")
        stamped: list[tuple[int, Path]] = []
        for path in self.directory.glob("*.json"):
            match = pattern.fullmatch(path.name)
            if match:
                stamped.append((int(match.group(1)), path))
        paths = [path for _, path in sorted(stamped, key=lambda item: item[0], reverse=True)]
        entries: list[dict[str, Any]] = []
        for path in paths[: max(0, limit)]:
            try:
                entries.append(_read_json(path))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable log file %s: %s", path, exc)
        return entries
