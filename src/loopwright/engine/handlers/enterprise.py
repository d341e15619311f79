"""Enterprise edition steps: local files, processes, environment, data conversion.

The dispatcher refuses these on the community edition before a handler runs.
Database, email and cloud-storage steps are declared but have no driver in
this build; they always fail with a capability error naming what is missing.
"""

from __future__ import annotations

import asyncio
import csv
import io as _io
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

import yaml

from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.steps import (
    CloudStorage,
    DatabaseQuery,
    DataTransform,
    EnvironmentVariable,
    FileSystem,
    ReadEmail,
    SendEmail,
    SystemCommand,
)
from loopwright.errors import CapabilityUnavailableError, GraphConfigurationError, StepExecutionError

logger = logging.getLogger("loopwright.engine.handlers.enterprise")

DATA_FORMATS = ("json", "yaml", "csv")


# ---------------------------------------------------------------------------
# fileSystem
# ---------------------------------------------------------------------------


async def file_system(step: FileSystem, io: IOSurface) -> StepResult:
    op = step.operation
    source = io.sub(step.source_path)
    if not source:
        raise GraphConfigurationError("File system step requires a sourcePath")
    src = Path(source).expanduser().resolve()
    dest = Path(io.sub(step.destination_path)).expanduser().resolve() if step.destination_path else None

    if op == "read":
        try:
            return StepResult(value=src.read_text(encoding=step.encoding))
        except OSError as exc:
            raise StepExecutionError(f"Cannot read {src}: {exc}") from exc
    if op == "write":
        if step.content is None:
            raise GraphConfigurationError("Content is required for write operation")
        try:
            src.parent.mkdir(parents=True, exist_ok=True)
            src.write_text(io.sub(step.content), encoding=step.encoding)
        except OSError as exc:
            raise StepExecutionError(f"Cannot write {src}: {exc}") from exc
        logger.info("Wrote %s", src)
        return StepResult(value={"success": True, "path": str(src)})
    if op in ("copy", "move"):
        if dest is None:
            raise GraphConfigurationError(f"Destination path is required for {op} operation")
        try:
            if op == "copy":
                shutil.copy2(src, dest)
            else:
                shutil.move(str(src), str(dest))
        except OSError as exc:
            raise StepExecutionError(f"Cannot {op} {src} to {dest}: {exc}") from exc
        return StepResult(value={"success": True, "source": str(src), "destination": str(dest)})
    if op == "delete":
        try:
            if src.is_dir():
                shutil.rmtree(src)
            else:
                src.unlink()
        except OSError as exc:
            raise StepExecutionError(f"Cannot delete {src}: {exc}") from exc
        return StepResult(value={"success": True, "path": str(src)})
    if op == "exists":
        return StepResult(value=src.exists())
    raise GraphConfigurationError(f"Unknown file system operation: {op}")


# ---------------------------------------------------------------------------
# systemCommand / environmentVariable
# ---------------------------------------------------------------------------


async def system_command(step: SystemCommand, io: IOSurface) -> StepResult:
    command = io.sub(step.command).strip()
    if not command:
        raise GraphConfigurationError("System command step requires a command")
    args = [io.sub(a) for a in (step.args or [])]
    full_command = " ".join([command, *args])
    cwd = io.sub(step.working_directory) or None

    logger.info("Running command: %s", full_command)
    try:
        proc = await asyncio.create_subprocess_shell(
            full_command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        stdout, stderr = await proc.communicate()
    except OSError as exc:
        raise StepExecutionError(f"Command failed to start: {exc}") from exc

    result = {
        "stdout": stdout.decode("utf-8", errors="replace"),
        "stderr": stderr.decode("utf-8", errors="replace"),
        "exitCode": proc.returncode,
    }
    if proc.returncode:
        logger.warning("Command exited with %d: %s", proc.returncode, result["stderr"][:200])
    return StepResult.storing(result, result["stdout"])


async def environment_variable(step: EnvironmentVariable, io: IOSurface) -> StepResult:
    name = io.sub(step.variable_name)
    if not name:
        raise GraphConfigurationError("Environment variable step requires a variableName")
    if step.operation == "get":
        return StepResult(value=os.environ.get(name, ""))
    if step.operation == "set":
        if step.value is None:
            raise GraphConfigurationError("Value is required for set operation")
        value = io.sub(step.value)
        os.environ[name] = value
        return StepResult(value={"success": True, "variable": name, "value": value})
    raise GraphConfigurationError(f"Unknown environment variable operation: {step.operation}")


# ---------------------------------------------------------------------------
# dataTransform
# ---------------------------------------------------------------------------


def _parse(text: str, fmt: str) -> Any:
    try:
        if fmt == "json":
            return json.loads(text)
        if fmt == "yaml":
            return yaml.safe_load(text)
        if fmt == "csv":
            return list(csv.DictReader(_io.StringIO(text)))
    except (ValueError, yaml.YAMLError, csv.Error) as exc:
        raise StepExecutionError(f"Cannot parse input as {fmt}: {exc}") from exc
    raise GraphConfigurationError(f"Unsupported data format: {fmt}")


def _dump(data: Any, fmt: str) -> str:
    if fmt == "json":
        return json.dumps(data, indent=2)
    if fmt == "yaml":
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    if fmt == "csv":
        rows = data if isinstance(data, list) else [data]
        if not rows or not all(isinstance(r, dict) for r in rows):
            raise StepExecutionError("CSV output requires a list of objects")
        fieldnames: list[str] = []
        for row in rows:
            fieldnames.extend(k for k in row if k not in fieldnames)
        buf = _io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=fieldnames, lineterminator="\n")
        writer.writeheader()
        writer.writerows(rows)
        return buf.getvalue()
    raise GraphConfigurationError(f"Unsupported data format: {fmt}")


async def data_transform(step: DataTransform, io: IOSurface) -> StepResult:
    text = io.sub(step.input)
    if step.operation == "parse":
        return StepResult(value=_parse(text, step.input_format))
    if step.operation == "stringify":
        # Input is a JSON value (typically substituted from a variable)
        data = _parse(text, "json") if text else None
        return StepResult(value=_dump(data, step.output_format))
    if step.operation == "convert":
        return StepResult(value=_dump(_parse(text, step.input_format), step.output_format))
    raise GraphConfigurationError(f"Unknown data transform operation: {step.operation}")


# ---------------------------------------------------------------------------
# Driver-less steps
# ---------------------------------------------------------------------------


async def database_query(step: DatabaseQuery, io: IOSurface) -> StepResult:
    kind = step.database_type or "database"
    raise CapabilityUnavailableError(
        f"databaseQuery requires a {kind} driver, which is not installed in this build",
        capability="databaseAutomation",
    )


async def send_email(step: SendEmail, io: IOSurface) -> StepResult:
    raise CapabilityUnavailableError(
        "sendEmail requires an SMTP mail driver, which is not installed in this build",
        capability="emailAutomation",
    )


async def read_email(step: ReadEmail, io: IOSurface) -> StepResult:
    raise CapabilityUnavailableError(
        "readEmail requires an IMAP mail driver, which is not installed in this build",
        capability="emailAutomation",
    )


async def cloud_storage(step: CloudStorage, io: IOSurface) -> StepResult:
    provider = step.provider or "cloud"
    raise CapabilityUnavailableError(
        f"cloudStorage requires a {provider} storage SDK, which is not installed in this build",
        capability="cloudIntegration",
    )


HANDLERS = {
    FileSystem: file_system,
    SystemCommand: system_command,
    EnvironmentVariable: environment_variable,
    DataTransform: data_transform,
    DatabaseQuery: database_query,
    SendEmail: send_email,
    ReadEmail: read_email,
    CloudStorage: cloud_storage,
}
