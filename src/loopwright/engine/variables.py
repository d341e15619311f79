"""Loopwright Variable Scope -- per-run variable storage and ``{{path}}`` interpolation.

One :class:`VariableScope` is created for every run and passed by reference
through the executor, the evaluator and every handler. Nothing is shared
between runs.

Path grammar: ``name``, ``name.prop``, ``name[0]`` chained arbitrarily
(``a.b[0].c``). A lookup that misses (unknown key, out-of-range index,
indexing into a scalar) resolves to ``""`` instead of raising, so a templated
step never hard-fails on a missing upstream value.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

logger = logging.getLogger("loopwright.engine.variables")

_TEMPLATE_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_\[\].]+)\s*\}\}")
_JS_FLOAT_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_NUMERIC_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant: {name}")


def _normalize_number(value: float) -> int | float:
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def parse_value(raw: str) -> Any:
    """Auto-type a string value.

    Tries JSON first (objects, arrays, numbers, booleans, null), then the
    literals ``true``/``false``, then a plain numeric string, and finally keeps
    the string as-is.
    """
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, TypeError):
        pass

    if raw == "true":
        return True
    if raw == "false":
        return False

    stripped = raw.strip()
    if stripped and _NUMERIC_RE.match(stripped):
        return _normalize_number(float(stripped))
    return raw


def parse_float(raw: Any) -> float | None:
    """Parse the leading number of ``raw`` the way a browser's parseFloat does.

    Returns None where parseFloat would return NaN.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    match = _JS_FLOAT_RE.match(str(raw))
    if not match:
        return None
    return float(match.group(1))


def stringify(value: Any) -> str:
    """Render a variable value as text for templates and comparisons.

    None becomes ``""``, objects and arrays are JSON-encoded, booleans are
    ``true``/``false`` and integral floats drop their fraction.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(_normalize_number(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def tokenize_path(path: str) -> list[str | int]:
    """Split ``a.b[0].c`` into ``["a", "b", 0, "c"]``.

    Non-numeric bracket contents are dropped.
    """
    tokens: list[str | int] = []
    current = ""
    i = 0
    while i < len(path):
        char = path[i]
        if char == ".":
            if current:
                tokens.append(current)
            current = ""
            i += 1
        elif char == "[":
            if current:
                tokens.append(current)
            current = ""
            i += 1
            index_str = ""
            while i < len(path) and path[i] != "]":
                index_str += path[i]
                i += 1
            if i < len(path):
                i += 1  # closing ]
            index_str = index_str.strip()
            if re.fullmatch(r"-?\d+", index_str):
                tokens.append(int(index_str))
        else:
            current += char
            i += 1
    if current:
        tokens.append(current)
    return tokens


class VariableScope:
    """Typed key/value store owned by exactly one run."""

    def __init__(self, seed: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = {}
        self.init(seed)

    def init(self, seed: dict[str, Any] | None = None) -> None:
        """Reset the scope to a shallow copy of ``seed``."""
        self._values = dict(seed or {})

    def get(self, path: str) -> Any:
        """Resolve a dotted/indexed path. Misses resolve to ``""``."""
        tokens = tokenize_path(path)
        if not tokens:
            return ""
        root = str(tokens[0])
        if root not in self._values:
            return ""
        value: Any = self._values[root]
        for token in tokens[1:]:
            if value is None:
                return ""
            if isinstance(token, int):
                if not isinstance(value, list) or token < 0 or token >= len(value):
                    return ""
                value = value[token]
            else:
                if not isinstance(value, dict) or token not in value:
                    return ""
                value = value[token]
        return value

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def set_parsed(self, key: str, raw: str) -> Any:
        """Auto-type ``raw`` with :func:`parse_value` and store it."""
        value = parse_value(raw)
        self._values[key] = value
        return value

    def has(self, key: str) -> bool:
        return key in self._values

    def substitute(self, template: str | None) -> str:
        """Replace every ``{{ path }}`` token with the looked-up value."""
        if not template:
            return ""

        def replacer(match: re.Match) -> str:
            return stringify(self.get(match.group(1)))

        return _TEMPLATE_RE.sub(replacer, str(template))

    def substitute_all(self, obj: Any) -> Any:
        """Recursively substitute strings inside dicts and lists."""
        if isinstance(obj, str):
            return self.substitute(obj)
        if isinstance(obj, dict):
            return {k: self.substitute_all(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self.substitute_all(item) for item in obj]
        return obj

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of the current values (for logging)."""
        return dict(self._values)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableScope(keys={sorted(self._values)})"
