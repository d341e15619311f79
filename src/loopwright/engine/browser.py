"""Loopwright Browser Surface -- Playwright-backed DOM access.

``PlaywrightBrowser`` implements both ``PageQuery`` and ``BrowserActions``.
It either launches its own detached (headless) Chromium via ``start()`` or
wraps a page owned by somebody else via ``attach()`` (the visible, windowed
surface). Selectors resolve as CSS first and fall back to XPath.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from loopwright.errors import StepExecutionError
from loopwright.models import DEFAULT_NAVIGATION_TIMEOUT_MS, DEFAULT_VIEWPORT

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger("loopwright.engine.browser")


class PlaywrightBrowser:
    """DOM surface over one Playwright page."""

    def __init__(
        self,
        headless: bool = True,
        browser_name: str = "chromium",
        viewport: tuple[int, int] = DEFAULT_VIEWPORT,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ) -> None:
        self._headless = headless
        self._browser_name = browser_name
        self._viewport = viewport
        self._navigation_timeout_ms = navigation_timeout_ms

        # Managed lifecycle -- set by start()/stop(), or attach()
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Page | None = None
        self._owned = False

    # -- Lifecycle -----------------------------------------------------------

    @classmethod
    def attach(cls, page: Page) -> PlaywrightBrowser:
        """Wrap a page supplied by the host; ``stop()`` will not close it."""
        surface = cls(headless=False)
        surface._page = page
        return surface

    async def start(self) -> None:
        """Launch the browser and open a blank page."""
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self._browser_name)
        self._browser = await launcher.launch(headless=self._headless)
        self._context = await self._browser.new_context(
            viewport={"width": self._viewport[0], "height": self._viewport[1]},
        )
        self._page = await self._context.new_page()
        self._page.set_default_navigation_timeout(self._navigation_timeout_ms)
        self._owned = True
        logger.info("Launched %s (headless=%s)", self._browser_name, self._headless)

    async def stop(self) -> None:
        """Close the browser if this surface launched it."""
        if not self._owned:
            self._page = None
            return
        for name in ("_context", "_browser"):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as exc:  # noqa: BLE001 -- already torn down by the driver
                logger.debug("Ignoring error closing %s: %s", name.strip("_"), exc)
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
        self._owned = False

    async def __aenter__(self) -> PlaywrightBrowser:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise StepExecutionError("Browser surface is not started")
        return self._page

    # -- Selector resolution -------------------------------------------------

    async def _resolve(self, selector: str) -> Locator | None:
        """First match as CSS, else as XPath, else None."""
        from playwright.async_api import Error as PlaywrightError

        if not selector:
            return None
        for candidate in (selector, f"xpath={selector}"):
            try:
                locator = self.page.locator(candidate)
                if await locator.count() > 0:
                    return locator.first
            except PlaywrightError:
                # Not parseable in this selector engine
                continue
        return None

    async def _require(self, selector: str) -> Locator:
        locator = await self._resolve(selector)
        if locator is None:
            raise StepExecutionError(f"Element not found: {selector}")
        return locator

    async def _run(self, label: str, coro: Any) -> Any:
        from playwright.async_api import Error as PlaywrightError

        try:
            return await coro
        except PlaywrightError as exc:
            raise StepExecutionError(f"{label} failed: {exc}") from exc

    # -- PageQuery -----------------------------------------------------------

    async def element_exists(self, selector: str) -> bool:
        return await self._resolve(selector) is not None

    async def extract_text(self, selector: str) -> str:
        locator = await self._require(selector)
        text = await self._run("Extract", locator.text_content())
        return (text or "").strip()

    async def read_text(self, selector: str) -> str:
        locator = await self._resolve(selector)
        if locator is None:
            return ""
        text = await self._run("Read text", locator.text_content())
        return (text or "").strip()

    # -- BrowserActions ------------------------------------------------------

    async def navigate(self, url: str) -> None:
        logger.info("Navigating to %s", url)
        await self._run("Navigation", self.page.goto(url, wait_until="domcontentloaded"))

    async def click(self, selector: str) -> None:
        locator = await self._require(selector)
        await self._run("Click", locator.click())

    async def type(self, selector: str, text: str) -> None:
        locator = await self._require(selector)
        await self._run("Type", locator.fill(text))

    async def scroll_to(self, selector: str) -> None:
        locator = await self._require(selector)
        await self._run("Scroll", locator.scroll_into_view_if_needed())

    async def scroll_by(self, amount: int) -> None:
        await self._run("Scroll", self.page.mouse.wheel(0, amount))

    async def select_option(self, selector: str, value: str | None = None, index: int | None = None) -> None:
        locator = await self._require(selector)
        if index is not None:
            await self._run("Select option", locator.select_option(index=index))
        else:
            await self._run("Select option", locator.select_option(value=value))

    async def upload_file(self, selector: str, path: str) -> None:
        locator = await self._require(selector)
        await self._run("File upload", locator.set_input_files(path))

    async def hover(self, selector: str) -> None:
        locator = await self._require(selector)
        await self._run("Hover", locator.hover())

    async def screenshot(self) -> bytes:
        return await self._run("Screenshot", self.page.screenshot(full_page=False))
