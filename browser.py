"""Playwright browser controller and the per-slot instance handle."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
    TimeoutError as PlaywrightTimeout,
)
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from automation_types import PipelineOptions
from exceptions import (
    BrowserNotStartedError,
    ElementNotFoundError,
    ElementNotInteractableError,
    NavigationError,
    ScreenshotError,
)

BrowserType = Literal["chromium", "firefox", "webkit"]

NAVIGATION_ATTEMPTS = 3


class SimpleBrowser:
    """One isolated Playwright browser with a single page."""

    def __init__(
        self,
        browser_type: BrowserType = "chromium",
        headless: bool = True,
        viewport_width: int = 1280,
        viewport_height: int = 800,
        logger: Optional[logging.Logger] = None,
    ):
        self.browser_type = browser_type
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.logger = logger or logging.getLogger("formfill.browser")

        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def _ensure_started(self) -> None:
        """Raise if browser not started."""
        if self.page is None:
            raise BrowserNotStartedError()

    async def start(self, timeout: float = 30000) -> None:
        """Launch the browser engine and open a blank page."""
        self._playwright = await async_playwright().start()

        browser_launcher = getattr(self._playwright, self.browser_type)
        self.browser = await browser_launcher.launch(headless=self.headless, timeout=timeout)
        self.context = await self.browser.new_context(
            viewport={"width": self.viewport_width, "height": self.viewport_height}
        )
        self.page = await self.context.new_page()
        self.page.set_default_timeout(timeout)

        self.logger.debug(f"Browser started: {self.browser_type} (headless={self.headless})")

    async def close(self) -> None:
        """Close the browser and clean up resources."""
        page, context, browser, playwright = self.page, self.context, self.browser, self._playwright
        self.page = self.context = self.browser = self._playwright = None
        if page:
            await page.close()
        if context:
            await context.close()
        if browser:
            await browser.close()
        if playwright:
            await playwright.stop()
        self.logger.debug("Browser closed")

    @property
    def is_open(self) -> bool:
        return self.page is not None

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    async def goto(
        self,
        url: str,
        wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded",
        timeout: float = 30000,
    ) -> None:
        """Navigate to a URL and wait for the requested document state."""
        self._ensure_started()
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeout as e:
            raise NavigationError(f"Navigation timed out: {url}", url=url, timeout=timeout) from e
        except Exception as e:
            raise NavigationError(f"Navigation failed: {e}", url=url) from e

    # ─────────────────────────────────────────────────────────────────────────
    # Element interaction
    # ─────────────────────────────────────────────────────────────────────────

    async def wait_for_element(
        self,
        selector: str,
        state: Literal["attached", "detached", "visible", "hidden"] = "visible",
        timeout: float = 30000,
    ) -> None:
        """Wait for an element to reach a state, raising if it never does."""
        self._ensure_started()
        try:
            await self.page.wait_for_selector(selector, state=state, timeout=timeout)
        except PlaywrightTimeout as e:
            raise ElementNotFoundError(
                f"Timed out waiting for '{selector}' to be {state}",
                selector=selector,
                timeout=timeout,
            ) from e

    async def type_into(self, selector: str, text: str, timeout: float = 30000, delay: int = 0) -> None:
        """Focus the first element matching selector and type text into it."""
        self._ensure_started()
        try:
            await self.page.locator(selector).first.press_sequentially(text, delay=delay, timeout=timeout)
        except PlaywrightTimeout as e:
            raise ElementNotInteractableError(
                f"Could not type into '{selector}'", selector=selector, reason="timeout"
            ) from e

    async def click_and_wait(
        self,
        selector: str,
        timeout: float = 30000,
        navigation_timeout: float = 10000,
    ) -> bool:
        """Click the first match and wait for a main-frame navigation.

        Returns True if the page navigated within navigation_timeout.
        """
        self._ensure_started()
        page = self.page
        navigation = asyncio.ensure_future(
            page.wait_for_event(
                "framenavigated",
                predicate=lambda frame: frame == page.main_frame,
                timeout=navigation_timeout,
            )
        )
        try:
            await page.locator(selector).first.click(timeout=timeout)
        except Exception as e:
            navigation.cancel()
            if isinstance(e, PlaywrightTimeout):
                raise ElementNotInteractableError(
                    f"Could not click '{selector}'", selector=selector, reason="timeout"
                ) from e
            raise ElementNotInteractableError(
                f"Click failed on '{selector}': {e}", selector=selector
            ) from e

        try:
            await navigation
            return True
        except PlaywrightTimeout:
            return False

    # ─────────────────────────────────────────────────────────────────────────
    # Screenshots
    # ─────────────────────────────────────────────────────────────────────────

    async def screenshot(self, timeout: float = 30000, full_page: bool = False) -> bytes:
        """Take a PNG screenshot of the current viewport."""
        self._ensure_started()
        try:
            return await self.page.screenshot(full_page=full_page, timeout=timeout)
        except Exception as e:
            raise ScreenshotError(f"Screenshot failed: {e}") from e


class BrowserInstance:
    """Handle binding one browser session to one slot and its fill value."""

    def __init__(self, slot: int, value: str, browser: Any, logger: Optional[logging.Logger] = None):
        self.slot = slot
        self.value = value
        self.browser = browser
        self.logger = logger or logging.getLogger("formfill.browser")
        self._closed = False

    def __repr__(self) -> str:
        return f"BrowserInstance(slot={self.slot}, value={self.value!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, url: str, options: PipelineOptions) -> None:
        """Launch the session and load url up to DOMContentLoaded."""
        await self.browser.start(timeout=options.timeout_ms)
        if self._closed:
            # close() ran while the engine was still launching
            await self.browser.close()
            raise BrowserNotStartedError()

        attempts = NAVIGATION_ATTEMPTS if options.auto_retry else 1
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(NavigationError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self.logger.info(
                        f"Instance {self.slot}: retrying navigation "
                        f"(attempt {attempt.retry_state.attempt_number}/{attempts})"
                    )
                await self.browser.goto(url, wait_until="domcontentloaded", timeout=options.timeout_ms)

    async def fill(self, options: PipelineOptions) -> None:
        """Wait for the form field and type this slot's value."""
        if options.loading_locator is not None:
            await self.browser.wait_for_element(
                options.loading_locator.to_selector(), state="hidden", timeout=options.timeout_ms
            )
        selector = options.field_locator.to_selector()
        await self.browser.wait_for_element(selector, state="visible", timeout=options.timeout_ms)
        await self.browser.type_into(selector, self.value, timeout=options.timeout_ms)

    async def submit(self, options: PipelineOptions) -> bool:
        """Activate the submit control; returns whether the page navigated."""
        selector = options.submit_locator.to_selector()
        await self.browser.wait_for_element(selector, state="visible", timeout=options.timeout_ms)
        navigated = await self.browser.click_and_wait(
            selector,
            timeout=options.timeout_ms,
            navigation_timeout=options.navigation_timeout_ms,
        )
        if not navigated:
            # Single-page forms often submit without a navigation.
            await asyncio.sleep(options.grace_delay_ms / 1000)
        return navigated

    async def capture(self, timeout: float = 30000) -> bytes:
        return await self.browser.screenshot(timeout=timeout)

    async def close(self) -> None:
        """Close the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.browser.close()
