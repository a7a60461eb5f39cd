"""Unit tests for screenshot capture and encoding."""
from __future__ import annotations

import base64
import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from automation_types import InstanceStatus
from browser import BrowserInstance
from conftest import make_mock_browser
from screenshots import ScreenshotCollector, encode_screenshot


def _png(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 40, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


class TestEncodeScreenshot:
    """Tests for encode_screenshot."""

    def test_zero_width_keeps_raw_bytes(self):
        assert base64.b64decode(encode_screenshot(b"raw", 0)) == b"raw"

    def test_downscales_wide_images(self):
        encoded = encode_screenshot(_png(1280, 800), 640)
        image = Image.open(io.BytesIO(base64.b64decode(encoded)))
        assert image.format == "JPEG"
        assert image.size == (640, 400)

    def test_small_images_not_upscaled(self):
        encoded = encode_screenshot(_png(320, 200), 640)
        image = Image.open(io.BytesIO(base64.b64decode(encoded)))
        assert image.size == (320, 200)


class TestScreenshotCollector:
    """Tests for ScreenshotCollector."""

    @pytest.mark.asyncio
    async def test_collects_in_slot_order(self):
        instances = [
            BrowserInstance(2, "15", make_mock_browser()),
            BrowserInstance(1, "14", make_mock_browser()),
        ]
        snapshots = await ScreenshotCollector(max_width=0).collect(instances)

        assert [s.id for s in snapshots] == [1, 2]
        assert [s.value for s in snapshots] == ["14", "15"]
        assert all(s.status == InstanceStatus.READY for s in snapshots)

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        broken = make_mock_browser()
        broken.screenshot = AsyncMock(side_effect=RuntimeError("page crashed"))
        instances = [BrowserInstance(1, "14", broken), BrowserInstance(2, "15", make_mock_browser())]

        snapshots = await ScreenshotCollector(max_width=0).collect(instances)

        assert snapshots[0].status == InstanceStatus.ERROR
        assert snapshots[0].screenshot is None
        assert snapshots[1].status == InstanceStatus.READY

    @pytest.mark.asyncio
    async def test_undecodable_image_marks_error(self):
        instances = [BrowserInstance(1, "14", make_mock_browser())]
        snapshots = await ScreenshotCollector(max_width=640).collect(instances)
        assert snapshots[0].status == InstanceStatus.ERROR

    @pytest.mark.asyncio
    async def test_passes_timeout(self):
        browser = make_mock_browser()
        await ScreenshotCollector(timeout_ms=1234, max_width=0).collect([BrowserInstance(1, "14", browser)])
        browser.screenshot.assert_awaited_once_with(timeout=1234)
