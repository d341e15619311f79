"""Loopwright Automation Runner -- wires one run together.

Creates a fresh :class:`VariableScope` seeded from the automation, picks the
browser surface (a launched Playwright browser in headless mode, or the
visible surface handed in by the host in windowed mode), builds the
:class:`IOSurface` and hands everything to the :class:`GraphExecutor`.
A browser is only launched when some node actually needs one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from loopwright.config import LoopwrightConfig
from loopwright.credentials import CredentialLookup
from loopwright.engine.browser import PlaywrightBrowser
from loopwright.engine.dispatcher import IOSurface, StepDispatcher
from loopwright.engine.graph import Automation
from loopwright.engine.graph_executor import GraphExecutor, RunResult, StatusCallback
from loopwright.engine.http import RequestsHttpClient
from loopwright.engine.protocols import BrowserActions, HttpClient
from loopwright.engine.variables import VariableScope

logger = logging.getLogger("loopwright.engine.runner")

BrowserFactory = Callable[[bool], Any]


class AutomationRunner:
    """Executes automations with the project's configuration and collaborators."""

    def __init__(
        self,
        config: LoopwrightConfig | None = None,
        credentials: CredentialLookup | None = None,
        http: HttpClient | None = None,
        dispatcher: StepDispatcher | None = None,
        browser_factory: BrowserFactory | None = None,
    ) -> None:
        self._config = config or LoopwrightConfig()
        self._credentials = credentials
        self._http = http or RequestsHttpClient(timeout=self._config.http_timeout)
        self._executor = GraphExecutor(dispatcher)
        self._browser_factory = browser_factory or self._launch_playwright

    def _launch_playwright(self, headless: bool) -> PlaywrightBrowser:
        return PlaywrightBrowser(
            headless=headless,
            browser_name=self._config.browser,
            viewport=self._config.viewport,
            navigation_timeout_ms=self._config.navigation_timeout_ms,
        )

    async def run(
        self,
        automation: Automation,
        *,
        headless: bool | None = None,
        surface: BrowserActions | None = None,
        variables: dict[str, Any] | None = None,
        on_status: StatusCallback | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Run ``automation`` once.

        Args:
            automation: The graph to execute.
            headless: Overrides ``automation.headless`` when given.
            surface: A visible browser surface owned by the caller. Used in
                windowed mode; never started or stopped here.
            variables: Extra seed values layered over ``automation.variables``.
            on_status: Per-node status callback.
            stop_event: Set it to stop before the next node visit.
        """
        mode_headless = automation.headless if headless is None else headless
        scope = VariableScope({**automation.variables, **(variables or {})})

        browser: Any = None
        launched: Any = None
        if automation.needs_browser():
            if not mode_headless and surface is not None:
                browser = surface
            else:
                launched = self._browser_factory(mode_headless)
                await launched.start()
                browser = launched

        io = IOSurface(
            scope=scope,
            http=self._http,
            browser=browser,
            credentials=self._credentials,
            edition=self._config.edition,
        )
        logger.info(
            "Starting automation %s in %s mode",
            automation.id,
            "headless" if mode_headless else "windowed",
        )
        try:
            return await self._executor.run(automation, io, on_status=on_status, stop_event=stop_event)
        finally:
            if launched is not None:
                await launched.stop()
