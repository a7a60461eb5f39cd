"""Best-effort screenshot checkpoints across all live browser instances."""
from __future__ import annotations

import asyncio
import base64
import io
import logging
from typing import List, Optional, Sequence

from PIL import Image

from automation_types import InstanceSnapshot, InstanceStatus
from browser import BrowserInstance


def encode_screenshot(data: bytes, max_width: int = 0) -> str:
    """Base64-encode a screenshot, downscaling to max_width when set."""
    if max_width <= 0:
        return base64.b64encode(data).decode("ascii")

    image = Image.open(io.BytesIO(data))
    if image.width > max_width:
        height = max(1, round(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=80)
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class ScreenshotCollector:
    """Captures every instance independently; one failure never aborts the batch."""

    def __init__(
        self,
        timeout_ms: float = 30000,
        max_width: int = 0,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout_ms = timeout_ms
        self.max_width = max_width
        self.logger = logger or logging.getLogger("formfill.screenshots")

    async def _capture_one(self, instance: BrowserInstance) -> InstanceSnapshot:
        try:
            raw = await instance.capture(timeout=self.timeout_ms)
            encoded = encode_screenshot(raw, self.max_width)
        except Exception as exc:
            self.logger.warning(f"Screenshot failed for instance {instance.slot}: {exc}")
            return InstanceSnapshot(id=instance.slot, value=instance.value, status=InstanceStatus.ERROR)
        return InstanceSnapshot(
            id=instance.slot,
            value=instance.value,
            status=InstanceStatus.READY,
            screenshot=encoded,
        )

    async def collect(self, instances: Sequence[BrowserInstance]) -> List[InstanceSnapshot]:
        """Return a fresh snapshot list, one entry per instance in slot order."""
        snapshots = await asyncio.gather(*(self._capture_one(i) for i in instances))
        return sorted(snapshots, key=lambda s: s.id)
