"""Variable step handlers (setVariable, modifyVariable)."""

from __future__ import annotations

import logging
from typing import Any

from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.steps import ModifyVariable, SetVariable
from loopwright.engine.variables import parse_float, parse_value, stringify
from loopwright.errors import GraphConfigurationError

logger = logging.getLogger("loopwright.engine.handlers.data")

MODIFY_OPERATIONS = ("set", "increment", "decrement", "append")


def _as_number(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    parsed = parse_float(value)
    return parsed if parsed is not None else 0.0


def _tidy(number: float) -> int | float:
    return int(number) if number.is_integer() else number


async def set_variable(step: SetVariable, io: IOSurface) -> StepResult:
    if not step.variable_name:
        raise GraphConfigurationError("Set variable step requires a variableName")
    value = parse_value(io.sub(step.value))
    io.scope.set(step.variable_name, value)
    logger.debug("Variable '%s' set to %r", step.variable_name, value)
    return StepResult(value=value)


async def modify_variable(step: ModifyVariable, io: IOSurface) -> StepResult:
    name = step.variable_name
    if not name:
        raise GraphConfigurationError("Modify variable step requires a variableName")
    op = step.operation or "set"
    raw = io.sub(step.value)
    current = io.scope.get(name)

    if op == "set":
        result: Any = parse_value(raw)
    elif op in ("increment", "decrement"):
        base = _as_number(current)
        by = parse_float(raw) if raw else 1.0
        if by is None:
            by = 1.0
        result = _tidy(base + by if op == "increment" else base - by)
    elif op == "append":
        result = stringify(current) + raw
    else:
        raise GraphConfigurationError(f"Unknown modifyVariable operation: {op}")

    io.scope.set(name, result)
    logger.debug("Variable '%s' %s -> %r", name, op, result)
    return StepResult(value=result)


HANDLERS = {
    SetVariable: set_variable,
    ModifyVariable: modify_variable,
}
