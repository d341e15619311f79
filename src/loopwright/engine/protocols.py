"""Capability Protocols.

These protocols define the contract between the Loopwright engine and the
I/O implementations it is handed. The engine never launches a browser or
opens a socket on its own; the runner injects concrete implementations
(Playwright, requests) and tests inject fakes.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Protocol, runtime_checkable


@dataclasses.dataclass
class HttpResponse:
    """Result of one outbound HTTP call."""

    status_code: int
    headers: dict[str, str]
    text: str
    url: str = ""
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def body(self) -> Any:
        """Decoded JSON body, or the raw text when it is not JSON."""
        if not self.text:
            return ""
        try:
            return json.loads(self.text)
        except ValueError:
            return self.text


@runtime_checkable
class PageQuery(Protocol):
    """Read-only DOM access used by the conditional evaluator.

    Selectors are tried as CSS first, then as XPath.
    """

    async def element_exists(self, selector: str) -> bool: ...

    async def extract_text(self, selector: str) -> str:
        """Text of the first match; raises StepExecutionError when nothing matches."""
        ...

    async def read_text(self, selector: str) -> str:
        """Text of the first match, or "" when nothing matches."""
        ...


@runtime_checkable
class BrowserActions(PageQuery, Protocol):
    """Browser surface used by DOM steps.

    Two implementations exist: a detached headless engine and an externally
    supplied visible surface. Both resolve selectors CSS-first with an XPath
    fallback.
    """

    async def navigate(self, url: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def type(self, selector: str, text: str) -> None: ...

    async def scroll_to(self, selector: str) -> None: ...

    async def scroll_by(self, amount: int) -> None: ...

    async def select_option(self, selector: str, value: str | None = None, index: int | None = None) -> None: ...

    async def upload_file(self, selector: str, path: str) -> None: ...

    async def hover(self, selector: str) -> None: ...

    async def screenshot(self) -> bytes: ...


@runtime_checkable
class HttpClient(Protocol):
    """Outbound HTTP capability shared by the API step and every provider handler."""

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
    ) -> HttpResponse: ...
