"""Unit tests for the HTTP API."""
from __future__ import annotations

import time
from unittest.mock import AsyncMock

import pytest
from starlette.testclient import TestClient

from automation import AutomationOrchestrator
from config import AutomationSettings, SettingsStore
from conftest import MockBrowserFactory, hang_until_closed
from history import MemoryHistoryStore
from server import create_app

URL = "https://example.com/form"


def _poll_until_done(client: TestClient, attempts: int = 300) -> dict:
    for _ in range(attempts):
        status = client.get("/api/automation/status").json()
        if status["status"] in ("completed", "error"):
            return status
        time.sleep(0.01)
    raise AssertionError("run never finished")


@pytest.fixture
def factory() -> MockBrowserFactory:
    return MockBrowserFactory()


@pytest.fixture
def client(factory):
    history = MemoryHistoryStore()
    orchestrator = AutomationOrchestrator(history=history, browser_factory=factory)
    settings_store = SettingsStore(defaults=AutomationSettings(screenshot_width=0))
    app = create_app(orchestrator, settings_store, history)
    with TestClient(app) as test_client:
        yield test_client


class TestSettingsRoutes:
    """Tests for /api/settings."""

    def test_get_defaults(self, client):
        response = client.get("/api/settings")
        assert response.status_code == 200
        data = response.json()
        assert data["value1"] == "14"
        assert data["value2"] == "15"
        assert data["timeout"] == 30

    def test_save(self, client):
        response = client.post("/api/settings", json={"value1": "20", "headless": False})
        assert response.status_code == 200
        assert response.json()["value1"] == "20"
        assert client.get("/api/settings").json()["headless"] is False

    def test_save_invalid(self, client):
        response = client.post("/api/settings", json={"timeout": 0})
        assert response.status_code == 400
        assert response.json() == {"message": "Invalid settings data"}

    def test_save_rejects_malformed_json(self, client):
        response = client.post("/api/settings", content=b"not json", headers={"content-type": "application/json"})
        assert response.status_code == 400

    def test_reset(self, client):
        client.post("/api/settings", json={"value1": "20"})
        response = client.post("/api/settings/reset")
        assert response.status_code == 200
        assert response.json()["value1"] == "14"


class TestAutomationRoutes:
    """Tests for /api/automation/*."""

    def test_status_idle(self, client):
        response = client.get("/api/automation/status")
        assert response.status_code == 200
        assert response.json()["status"] == "idle"

    def test_cancel_when_idle(self, client):
        response = client.post("/api/automation/cancel")
        assert response.status_code == 200
        assert response.json() == {"message": "Automation cancelled"}
        assert client.get("/api/automation/history").json() == []

    def test_start_rejects_bad_url(self, client):
        response = client.post("/api/automation/start", json={"url": "not a url"})
        assert response.status_code == 400
        assert "url" in response.json()["message"]

    def test_start_requires_url(self, client):
        response = client.post("/api/automation/start", json={})
        assert response.status_code == 400

    def test_start_and_poll(self, client, factory):
        response = client.post("/api/automation/start", json={"url": URL, "value1": "3", "value2": "4"})
        assert response.status_code == 200
        assert response.json() == {"message": "Automation started"}

        status = _poll_until_done(client)
        assert status["status"] == "completed"
        assert [s["status"] for s in status["steps"]] == ["success"] * 4
        assert [i["value"] for i in status["instances"]] == ["3", "4"]
        assert status["duration_ms"] >= 0

        history = client.get("/api/automation/history").json()
        assert len(history) == 1
        assert history[0]["status"] == "success"
        assert history[0]["value1"] == "3"
        assert history[0]["url"] == URL

    def test_start_uses_settings_values(self, client, factory):
        client.post("/api/settings", json={"value1": "8", "value2": "9"})
        client.post("/api/automation/start", json={"url": URL})
        status = _poll_until_done(client)
        assert [i["value"] for i in status["instances"]] == ["8", "9"]

    def test_second_start_rejected_then_cancel(self, client, factory):
        first = factory.browsers[0]
        first.goto = AsyncMock(side_effect=hang_until_closed(first))

        assert client.post("/api/automation/start", json={"url": URL}).status_code == 200
        response = client.post("/api/automation/start", json={"url": "https://example.com/other"})
        assert response.status_code == 400
        assert response.json() == {"message": "Automation is already running"}
        assert client.get("/api/automation/status").json()["url"] == URL

        assert client.post("/api/automation/cancel").status_code == 200
        status = client.get("/api/automation/status").json()
        assert status["status"] == "error"
        assert status["error_message"] == "Automation cancelled by user"

        history = client.get("/api/automation/history").json()
        assert [h["status"] for h in history] == ["cancelled"]

    def test_clear_history(self, client):
        client.post("/api/automation/start", json={"url": URL})
        _poll_until_done(client)
        response = client.delete("/api/automation/history")
        assert response.status_code == 200
        assert client.get("/api/automation/history").json() == []
