"""JSON-file backed history store."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from automation_types import HistoryRecord, HistoryStatus
from history.memory import MemoryHistoryStore


class JsonHistoryStore(MemoryHistoryStore):
    """History persisted to a JSON file so it survives restarts."""

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        super().__init__()
        self.path = Path(path)
        self.logger = logger or logging.getLogger("formfill.history")
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._records = [HistoryRecord.from_dict(item) for item in raw.get("records", [])]
        except Exception as exc:
            self.logger.warning(f"Failed to load history from {self.path}: {exc}")
            self._records = []
        self._next_id = max((r.id for r in self._records), default=0) + 1

    def _save(self) -> None:
        payload = {"records": [r.to_dict() for r in self._records]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def add(
        self,
        url: str,
        status: HistoryStatus,
        duration_ms: int,
        values: Sequence[str],
        error_message: Optional[str] = None,
    ) -> HistoryRecord:
        record = super().add(url, status, duration_ms, values, error_message)
        self._save()
        return record

    def clear(self) -> None:
        super().clear()
        self._save()
