"""Loopwright Scheduler -- turns stored schedules into timed runs.

One asyncio task per active schedule:

- interval: sleep N (unit-normalized) then fire, forever
- cron:     sleep until the cron engine's next fire time, fire, repeat
- once:     sleep until the target time (or not at all if it has passed),
            fire, then disable the schedule and forget the task

Every firing reloads the automation from the store, runs it with a fresh
variable scope and appends one entry to the execution log. A firing never
raises; failures are logged and recorded.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from loopwright.engine.graph import CronSchedule, IntervalSchedule, ManualSchedule, OnceSchedule
from loopwright.engine.graph_executor import RunResult
from loopwright.engine.runner import AutomationRunner
from loopwright.errors import GraphConfigurationError, LoopwrightError, ScheduleError
from loopwright.models import DEFAULT_LOG_LIMIT
from loopwright.stores import AutomationStore, ExecutionLogStore, ScheduleRecord, ScheduleStore

logger = logging.getLogger("loopwright.scheduler")


# ---------------------------------------------------------------------------
# Cron engine
# ---------------------------------------------------------------------------


class CronEngine(Protocol):
    def validate(self, expression: str) -> None:
        """Raise ScheduleError if ``expression`` is not a valid cron expression."""
        ...

    def next_fire(self, expression: str, after: datetime) -> datetime: ...


class CroniterEngine:
    """Cron engine backed by the ``croniter`` package (five or six fields)."""

    def _croniter(self) -> Any:
        try:
            from croniter import croniter
        except ImportError as exc:
            raise ScheduleError(
                "Cron scheduling is unavailable: the 'croniter' package is not installed\n\n"
                "To fix: pip install croniter"
            ) from exc
        return croniter

    def validate(self, expression: str) -> None:
        croniter = self._croniter()
        if not croniter.is_valid(expression):
            raise ScheduleError(f"Invalid cron expression: {expression}")

    def next_fire(self, expression: str, after: datetime) -> datetime:
        """Next fire time after ``after``; fields are read as local wall-clock time."""
        croniter = self._croniter()
        local = after.astimezone().replace(tzinfo=None)
        return croniter(expression, local).get_next(datetime).astimezone()


def parse_once_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are local time."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ScheduleError(f"Invalid datetime for one-time schedule: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class ScheduledTask:
    """In-memory state for one armed (or paused) schedule."""

    record: ScheduleRecord
    enabled: bool = True
    handle: asyncio.Task | None = None
    next_run: datetime | None = None
    last_run: datetime | None = None
    run_count: int = 0

    @property
    def active(self) -> bool:
        return self.handle is not None and not self.handle.done()

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.record.id,
            "automationId": self.record.automation_id,
            "automationName": self.record.automation_name,
            "schedule": self.record.schedule.to_dict() if self.record.schedule else {"type": "manual"},
            "enabled": self.enabled,
            "active": self.active,
            "nextRun": self.next_run.isoformat() if self.next_run else None,
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "runCount": self.run_count,
        }


class Scheduler:
    """Owns the schedule-id -> task map. All methods run on the event loop."""

    def __init__(
        self,
        automations: AutomationStore,
        schedules: ScheduleStore,
        logs: ExecutionLogStore,
        runner: AutomationRunner,
        cron: CronEngine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._automations = automations
        self._schedules = schedules
        self._logs = logs
        self._runner = runner
        self._cron = cron or CroniterEngine()
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._tasks: dict[str, ScheduledTask] = {}

    # -- Public API ----------------------------------------------------------

    def schedule(self, record: ScheduleRecord, persist: bool = True) -> ScheduledTask:
        """Arm ``record`` (replacing any task with the same id) and optionally persist it.

        Raises ScheduleError for an invalid or manual schedule; nothing is armed then.
        """
        spec = record.schedule
        if spec is None or isinstance(spec, ManualSchedule):
            raise ScheduleError(f"Schedule {record.id} is manual; nothing to arm")
        if isinstance(spec, CronSchedule):
            self._cron.validate(spec.expression)
        elif isinstance(spec, OnceSchedule):
            parse_once_datetime(spec.datetime)

        self._cancel(record.id)
        if persist:
            self._schedules.save(record)
        task = ScheduledTask(record=record, enabled=record.enabled)
        self._tasks[record.id] = task
        if record.enabled:
            self._arm(task)
        logger.info("Scheduled %s for automation %s (%s)", record.id, record.automation_id, spec.kind)
        return task

    def unschedule(self, schedule_id: str) -> bool:
        """Stop the timer and delete the persisted schedule."""
        found = self._cancel(schedule_id)
        self._tasks.pop(schedule_id, None)
        deleted = self._schedules.delete(schedule_id)
        if found or deleted:
            logger.info("Unscheduled %s", schedule_id)
        return found or deleted

    def toggle(self, schedule_id: str, enabled: bool) -> bool:
        """Enable or disable a schedule without deleting it. Re-enabling arms from now."""
        task = self._tasks.get(schedule_id)
        if task is None:
            record = self._schedules.load(schedule_id)
            if record is None:
                return False
            task = ScheduledTask(record=record, enabled=record.enabled)
            self._tasks[schedule_id] = task

        task.enabled = enabled
        task.record.enabled = enabled
        self._schedules.update(schedule_id, enabled=enabled)
        self._cancel(schedule_id)
        if enabled:
            self._arm(task)
        logger.info("Schedule %s %s", schedule_id, "enabled" if enabled else "disabled")
        return True

    def activate_stored(self) -> int:
        """Re-arm every persisted, enabled schedule. Returns how many were armed."""
        armed = 0
        for record in self._schedules.list():
            if not record.enabled:
                logger.info("Skipping disabled schedule %s", record.id)
                continue
            if not self._automations.path_for(record.automation_id).exists():
                logger.warning(
                    "Skipping schedule %s: automation %s no longer exists", record.id, record.automation_id
                )
                continue
            try:
                self.schedule(record, persist=False)
            except ScheduleError as exc:
                logger.error("Could not activate schedule %s: %s", record.id, exc)
                continue
            armed += 1
        logger.info("Activated %d stored schedule(s)", armed)
        return armed

    def tasks(self) -> dict[str, ScheduledTask]:
        return dict(self._tasks)

    def execution_logs(self, automation_id: str, limit: int = DEFAULT_LOG_LIMIT) -> list[dict[str, Any]]:
        return self._logs.recent(automation_id, limit)

    async def run_now(self, automation_id: str, headless: bool | None = None) -> dict[str, Any]:
        """Run a stored automation once and return the log entry written for it."""
        automation = self._automations.load(automation_id)
        if automation is None:
            raise GraphConfigurationError(f"Automation not found: {automation_id}")
        return await self._execute(automation_id, headless=headless, ignore_disabled=True)

    async def shutdown(self) -> None:
        handles = [t.handle for t in self._tasks.values() if t.handle is not None and not t.handle.done()]
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped (%d task(s) cancelled)", len(handles))

    # -- Timers --------------------------------------------------------------

    def _arm(self, task: ScheduledTask) -> None:
        spec = task.record.schedule
        if isinstance(spec, IntervalSchedule):
            coro = self._interval_loop(task, spec)
        elif isinstance(spec, CronSchedule):
            coro = self._cron_loop(task, spec)
        elif isinstance(spec, OnceSchedule):
            coro = self._once(task, spec)
        else:
            raise ScheduleError(f"Cannot arm schedule {task.record.id}")
        task.handle = asyncio.get_running_loop().create_task(coro, name=f"loopwright-schedule-{task.record.id}")

    def _cancel(self, schedule_id: str) -> bool:
        task = self._tasks.get(schedule_id)
        if task is None:
            return False
        if task.handle is not None and not task.handle.done() and task.handle is not asyncio.current_task():
            task.handle.cancel()
        task.handle = None
        task.next_run = None
        return True

    async def _interval_loop(self, task: ScheduledTask, spec: IntervalSchedule) -> None:
        seconds = spec.interval_ms / 1000
        while True:
            task.next_run = datetime.fromtimestamp(self._clock().timestamp() + seconds, timezone.utc)
            await asyncio.sleep(seconds)
            await self._fire(task)

    async def _cron_loop(self, task: ScheduledTask, spec: CronSchedule) -> None:
        while True:
            now = self._clock()
            task.next_run = self._cron.next_fire(spec.expression, now)
            await asyncio.sleep(max(0.0, (task.next_run - now).total_seconds()))
            await self._fire(task)

    async def _once(self, task: ScheduledTask, spec: OnceSchedule) -> None:
        target = parse_once_datetime(spec.datetime)
        delay = (target - self._clock()).total_seconds()
        task.next_run = target
        if delay > 0:
            await asyncio.sleep(delay)
        else:
            logger.info("One-time schedule %s is due (target %s); firing now", task.record.id, spec.datetime)
        try:
            await self._fire(task)
        finally:
            task.enabled = False
            task.record.enabled = False
            task.next_run = None
            self._schedules.update(task.record.id, enabled=False)
            self._tasks.pop(task.record.id, None)
            logger.info("One-time schedule %s completed and disabled", task.record.id)

    async def _fire(self, task: ScheduledTask) -> None:
        task.last_run = self._clock()
        task.run_count += 1
        await self._execute(task.record.automation_id, headless=task.record.headless)

    # -- Execution -----------------------------------------------------------

    async def _execute(
        self,
        automation_id: str,
        headless: bool | None = None,
        ignore_disabled: bool = False,
    ) -> dict[str, Any]:
        started = time.monotonic()
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            automation = self._automations.load(automation_id)
        except (OSError, ValueError, LoopwrightError) as exc:
            logger.error("Cannot load automation %s for scheduled run: %s", automation_id, exc)
            entry = {
                "automationId": automation_id,
                "automationName": "",
                "timestamp": timestamp,
                "success": False,
                "duration": int((time.monotonic() - started) * 1000),
                "error": f"Cannot load automation: {exc}",
                "stepsExecuted": 0,
                "stepsSucceeded": 0,
                "variables": {},
            }
            self._write_log(entry)
            return entry
        if automation is None:
            logger.warning("Scheduled automation %s no longer exists; skipping", automation_id)
            return {}
        if not automation.enabled and not ignore_disabled:
            logger.info("Automation %s is disabled; skipping scheduled run", automation_id)
            return {}

        mode_headless = automation.headless if headless is None else headless
        result: RunResult | None = None
        error: str | None = None
        try:
            result = await self._runner.run(automation, headless=mode_headless)
            error = result.error
        except Exception as exc:  # noqa: BLE001 -- a firing must never kill its timer
            logger.exception("Automation %s crashed", automation_id)
            error = str(exc) or type(exc).__name__

        entry = {
            "automationId": automation.id,
            "automationName": automation.name,
            "timestamp": timestamp,
            "success": bool(result is not None and result.success),
            "duration": int((time.monotonic() - started) * 1000),
            "error": error,
            "stepsExecuted": result.steps_executed if result else 0,
            "stepsSucceeded": result.steps_succeeded if result else 0,
            "variables": result.variables if result is not None and not mode_headless else {},
        }
        self._write_log(entry)
        return entry

    def _write_log(self, entry: dict[str, Any]) -> None:
        try:
            path = self._logs.write(entry)
            logger.info("Execution log written: %s", path)
        except OSError as exc:
            logger.error("Could not write execution log for %s: %s", entry.get("automationId"), exc)
