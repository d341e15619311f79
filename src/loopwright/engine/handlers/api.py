"""Generic outbound HTTP steps.

- ``apiCall``: one request; the substituted body is sent as JSON when it
  parses, otherwise as raw text. The decoded response body is the result.
- ``webhook``: same idea plus basic/bearer/API-key authentication and a
  bounded retry-with-fixed-delay policy. It is the only step that retries.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.handlers.common import ensure_ok
from loopwright.engine.steps import ApiCall, Webhook
from loopwright.errors import GraphConfigurationError, StepExecutionError
from loopwright.models import DEFAULT_RETRY_DELAY_MS

logger = logging.getLogger("loopwright.engine.handlers.api")


def _body_kwargs(raw_body: str) -> dict[str, Any]:
    if not raw_body:
        return {}
    try:
        return {"json_body": json.loads(raw_body)}
    except ValueError:
        return {"data": raw_body.encode("utf-8")}


def _substituted_headers(headers: dict[str, Any] | None, io: IOSurface) -> dict[str, str]:
    return {str(k): io.sub(v) for k, v in (headers or {}).items()}


async def api_call(step: ApiCall, io: IOSurface) -> StepResult:
    url = io.sub(step.url)
    if not url:
        raise GraphConfigurationError("API call step requires a URL")
    method = (step.method or "GET").upper()
    headers = _substituted_headers(step.headers, io)
    raw_body = io.sub(step.body) if step.body else ""

    logger.info("API call %s %s", method, url)
    response = await io.http.request(method, url, headers=headers, **_body_kwargs(raw_body))
    body = ensure_ok(response, f"API call {method} {url}")
    return StepResult(value=body)


def _auth_headers(auth: dict[str, Any] | None, io: IOSurface) -> dict[str, str]:
    if not auth:
        return {}
    kind = auth.get("type")
    if kind == "basic":
        user = io.sub(auth.get("username"))
        password = io.sub(auth.get("password"))
        token = base64.b64encode(f"{user}:{password}".encode()).decode("ascii")
        return {"Authorization": f"Basic {token}"}
    if kind == "bearer":
        return {"Authorization": f"Bearer {io.sub(auth.get('token'))}"}
    if kind == "apiKey":
        header = auth.get("apiKeyHeader") or "X-API-Key"
        return {str(header): io.sub(auth.get("apiKey"))}
    if kind in (None, "", "none"):
        return {}
    raise GraphConfigurationError(f"Unknown webhook authentication type: {kind}")


async def webhook(step: Webhook, io: IOSurface) -> StepResult:
    url = io.sub(step.url)
    if not url:
        raise GraphConfigurationError("Webhook step requires a URL")
    method = (step.method or "POST").upper()
    headers = _substituted_headers(step.headers, io)
    headers.update(_auth_headers(step.authentication, io))
    raw_body = io.sub(step.body) if step.body else ""
    body_kwargs: dict[str, Any] = {}
    if raw_body:
        try:
            body_kwargs = {"json_body": json.loads(raw_body)}
        except ValueError as exc:
            raise StepExecutionError("Webhook body must be valid JSON") from exc

    policy = step.retry_policy or {}
    try:
        max_retries = max(0, int(policy.get("maxRetries") or 0))
        delay_ms = int(policy.get("retryDelay") or DEFAULT_RETRY_DELAY_MS)
    except (TypeError, ValueError) as exc:
        raise GraphConfigurationError(f"Invalid webhook retry policy: {policy}") from exc

    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            response = await io.http.request(method, url, headers=headers, **body_kwargs)
            return StepResult(value=ensure_ok(response, f"Webhook {method} {url}"))
        except StepExecutionError as exc:
            last_error = exc
            if attempt < max_retries:
                logger.warning(
                    "Webhook attempt %d/%d failed: %s -- retrying in %dms",
                    attempt + 1,
                    max_retries + 1,
                    exc,
                    delay_ms,
                )
                await io.sleep(delay_ms / 1000)
    raise StepExecutionError(
        f"Webhook {method} {url} failed after {max_retries + 1} attempt(s): {last_error}"
    ) from last_error


HANDLERS = {
    ApiCall: api_call,
    Webhook: webhook,
}
