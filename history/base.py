"""History recorder interface for terminated automation runs."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from automation_types import HistoryRecord, HistoryStatus


class HistoryRecorder(ABC):
    """Append-only log of run outcomes."""

    @abstractmethod
    def add(
        self,
        url: str,
        status: HistoryStatus,
        duration_ms: int,
        values: Sequence[str],
        error_message: Optional[str] = None,
    ) -> HistoryRecord:
        """
        Append one record.

        Args:
            url: Target URL of the run
            status: Terminal outcome
            duration_ms: End time minus start time, in milliseconds
            values: Fill values, in slot order
            error_message: Failure or cancellation reason

        Returns:
            The stored record
        """
        pass

    @abstractmethod
    def list(self) -> List[HistoryRecord]:
        """Return all records, newest first."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""
        pass


def newest_first(records: Sequence[HistoryRecord]) -> List[HistoryRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)
