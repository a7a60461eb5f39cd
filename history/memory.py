"""In-process history store."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from automation_types import HistoryRecord, HistoryStatus
from history.base import HistoryRecorder, newest_first


class MemoryHistoryStore(HistoryRecorder):
    """Keeps records in a list for the lifetime of the process."""

    def __init__(self) -> None:
        self._records: List[HistoryRecord] = []
        self._next_id = 1

    def add(
        self,
        url: str,
        status: HistoryStatus,
        duration_ms: int,
        values: Sequence[str],
        error_message: Optional[str] = None,
    ) -> HistoryRecord:
        record = HistoryRecord(
            id=self._next_id,
            url=url,
            status=HistoryStatus(status),
            duration_ms=max(0, int(duration_ms)),
            values=tuple(values),
            created_at=datetime.now(),
            error_message=error_message,
        )
        self._next_id += 1
        self._records.append(record)
        return record

    def list(self) -> List[HistoryRecord]:
        return newest_first(self._records)

    def clear(self) -> None:
        self._records = []
