"""Helpers shared by the provider handlers."""

from __future__ import annotations

import json
from typing import Any

from loopwright.engine.protocols import HttpResponse
from loopwright.errors import StepExecutionError


def ensure_ok(response: HttpResponse, label: str) -> Any:
    """Return the decoded body, or raise StepExecutionError for HTTP >= 400."""
    if not response.ok:
        detail = response.text[:300] if response.text else ""
        raise StepExecutionError(f"{label} failed with HTTP {response.status_code}: {detail}".rstrip(": "))
    return response.body()


def parse_json_text(raw: str, error_message: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise StepExecutionError(error_message) from exc


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def dig(data: Any, *keys: Any) -> Any:
    """Safe nested lookup; returns None on any miss."""
    for key in keys:
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int) and -len(data) <= key < len(data):
            data = data[key]
        else:
            return None
    return data
