"""Pytest fixtures for form-fill automation tests."""
from __future__ import annotations

import asyncio
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from automation import AutomationOrchestrator
from automation_types import Locator, PipelineOptions
from exceptions import BrowserError
from history import MemoryHistoryStore


def make_mock_browser() -> MagicMock:
    """Create a mock SimpleBrowser whose operations all succeed."""
    browser = MagicMock()
    browser.start = AsyncMock()
    browser.close = AsyncMock()
    browser.goto = AsyncMock()
    browser.wait_for_element = AsyncMock()
    browser.type_into = AsyncMock()
    browser.click_and_wait = AsyncMock(return_value=True)
    browser.screenshot = AsyncMock(return_value=b"fake_screenshot_data")
    return browser


def hang_until_closed(browser: MagicMock, error: Optional[Exception] = None) -> Callable[..., Any]:
    """Side effect that blocks until browser.close() has been awaited."""

    async def hang(*args: Any, **kwargs: Any) -> None:
        while not browser.close.await_count:
            await asyncio.sleep(0.01)
        raise error or BrowserError("Target page, context or browser has been closed")

    return hang


class MockBrowserFactory:
    """Hands out mock browsers in slot order, creating more on demand."""

    def __init__(self, count: int = 2):
        self.browsers: List[MagicMock] = [make_mock_browser() for _ in range(count)]
        self.options: List[PipelineOptions] = []
        self._next = 0

    def __call__(self, options: PipelineOptions) -> MagicMock:
        self.options.append(options)
        if self._next >= len(self.browsers):
            self.browsers.append(make_mock_browser())
        browser = self.browsers[self._next]
        self._next += 1
        return browser


class SteppingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 10, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def pipeline_options() -> PipelineOptions:
    """Fast options: no loading indicator, no grace delay, raw screenshots."""
    return PipelineOptions(
        field_locator=Locator.parse('[data-cy="enter-name-field"]'),
        submit_locator=Locator.parse('[data-cy="start-game-button"]'),
        loading_locator=None,
        timeout_ms=1000,
        navigation_timeout_ms=100,
        grace_delay_ms=0,
        auto_retry=False,
        screenshot_width=0,
    )


@pytest.fixture
def browser_factory() -> MockBrowserFactory:
    return MockBrowserFactory()


@pytest.fixture
def history() -> MemoryHistoryStore:
    return MemoryHistoryStore()


@pytest.fixture
def orchestrator(history: MemoryHistoryStore, browser_factory: MockBrowserFactory) -> AutomationOrchestrator:
    return AutomationOrchestrator(history=history, browser_factory=browser_factory, clock=SteppingClock())
