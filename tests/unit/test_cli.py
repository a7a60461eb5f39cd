"""Unit tests for the command line runner."""
from __future__ import annotations

import argparse
import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

import cli
from automation import CANCEL_MESSAGE, AutomationOrchestrator
from automation_types import HistoryStatus
from config import AppConfig
from conftest import MockBrowserFactory, hang_until_closed
from history import JsonHistoryStore

URL = "https://example.com/form"


@pytest.fixture
def factory() -> MockBrowserFactory:
    return MockBrowserFactory()


@pytest.fixture
def orchestrators(monkeypatch, factory):
    """Route run_once through mock browsers and expose the orchestrators it builds."""
    created = []

    def make_orchestrator(**kwargs):
        orchestrator = AutomationOrchestrator(browser_factory=factory, **kwargs)
        created.append(orchestrator)
        return orchestrator

    monkeypatch.setattr(cli, "AutomationOrchestrator", make_orchestrator)
    return created


@pytest.fixture
def app_config(temp_dir) -> AppConfig:
    return AppConfig(
        server={"data_dir": str(temp_dir)},
        settings={"screenshot_width": 0, "loading_selector": ""},
    )


class TestRunOnce:
    """Tests for run_once."""

    @pytest.mark.asyncio
    async def test_success(self, orchestrators, app_config, capsys):
        args = argparse.Namespace(url=URL, value=["3", "4"])

        exit_code = await cli.run_once(args, app_config, logging.getLogger("test"))

        assert exit_code == 0
        assert "AUTOMATION SUMMARY" in capsys.readouterr().out
        records = JsonHistoryStore(app_config.server.history_file).list()
        assert records[0].status == HistoryStatus.SUCCESS
        assert records[0].values == ("3", "4")

    @pytest.mark.asyncio
    async def test_failure_exit_code(self, orchestrators, app_config, factory):
        factory.browsers[1].type_into = AsyncMock(side_effect=RuntimeError("detached"))
        args = argparse.Namespace(url=URL, value=None)

        assert await cli.run_once(args, app_config, logging.getLogger("test")) == 1

    @pytest.mark.asyncio
    async def test_interrupt_records_cancellation(self, orchestrators, app_config, factory):
        first = factory.browsers[0]
        first.goto = AsyncMock(side_effect=hang_until_closed(first))
        args = argparse.Namespace(url=URL, value=None)

        task = asyncio.create_task(cli.run_once(args, app_config, logging.getLogger("test")))
        for _ in range(300):
            if first.goto.await_count:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await orchestrators[0].wait()

        records = JsonHistoryStore(app_config.server.history_file).list()
        assert [r.status for r in records] == [HistoryStatus.CANCELLED]
        assert records[0].error_message == CANCEL_MESSAGE
        first.close.assert_awaited_once()
