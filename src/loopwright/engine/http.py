"""Outbound HTTP capability backed by a ``requests.Session``.

Requests are blocking, so each call runs in a worker thread and the event
loop stays free for timers and other runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import requests

from loopwright.engine.protocols import HttpResponse
from loopwright.errors import StepExecutionError
from loopwright.models import DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger("loopwright.engine.http")


class RequestsHttpClient:
    """Implements :class:`~loopwright.engine.protocols.HttpClient` with requests."""

    def __init__(self, timeout: float = DEFAULT_HTTP_TIMEOUT, session: requests.Session | None = None) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        data: Any = None,
        files: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        return await asyncio.to_thread(
            self._send,
            method.upper(),
            url,
            headers or {},
            params,
            json_body,
            data,
            files,
            timeout if timeout is not None else self._timeout,
        )

    def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None,
        json_body: Any,
        data: Any,
        files: dict[str, Any] | None,
        timeout: float,
    ) -> HttpResponse:
        start = time.monotonic()
        try:
            resp = self._session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                data=data,
                files=files,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            logger.info("HTTP %s %s -- failed: %s", method, url, exc)
            raise StepExecutionError(f"{method} {url} failed: {exc}") from exc

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info("HTTP %s %s -- %d (%.0fms)", method, url, resp.status_code, elapsed_ms)
        return HttpResponse(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            text=resp.text,
            url=resp.url,
            elapsed_ms=elapsed_ms,
        )

    def close(self) -> None:
        self._session.close()
