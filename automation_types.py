"""Typed objects shared by the automation pipeline, history and HTTP layers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple


class RunStatus(str, Enum):
    """Overall status of the current run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class StepStatus(str, Enum):
    """Status of one pipeline step."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    ERROR = "error"


class InstanceStatus(str, Enum):
    """Observed state of one browser instance."""
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class HistoryStatus(str, Enum):
    """Terminal outcome stored in history."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Step:
    """One named stage of the fixed pipeline."""

    id: str
    title: str
    description: str
    status: StepStatus = StepStatus.PENDING
    updated_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "updated_at": _iso(self.updated_at),
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class InstanceSnapshot:
    """Observability record for one browser slot at the last checkpoint."""

    id: int
    value: str
    status: InstanceStatus
    screenshot: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "value": self.value,
            "status": self.status.value,
            "screenshot": self.screenshot,
        }


@dataclass(frozen=True)
class RunSnapshot:
    """Read-only copy of a run, safe to hand to pollers."""

    status: RunStatus
    steps: Tuple[Step, ...] = ()
    instances: Tuple[InstanceSnapshot, ...] = ()
    url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at is None or self.ended_at is None:
            return None
        return duration_ms(self.started_at, self.ended_at)

    def step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "url": self.url,
            "steps": [s.to_dict() for s in self.steps],
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "instances": [i.to_dict() for i in self.instances],
        }


def duration_ms(started_at: datetime, ended_at: datetime) -> int:
    """Milliseconds between two timestamps, never negative."""
    return max(0, int((ended_at - started_at).total_seconds() * 1000))


@dataclass(frozen=True)
class HistoryRecord:
    """Immutable outcome of one terminated run."""

    id: int
    url: str
    status: HistoryStatus
    duration_ms: int
    values: Tuple[str, ...]
    created_at: datetime
    error_message: Optional[str] = None

    @property
    def value1(self) -> str:
        return self.values[0] if self.values else ""

    @property
    def value2(self) -> str:
        return self.values[1] if len(self.values) > 1 else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "values": list(self.values),
            "value1": self.value1,
            "value2": self.value2,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        values = data.get("values")
        if values is None:
            values = [data.get("value1", ""), data.get("value2", "")]
        return cls(
            id=int(data["id"]),
            url=str(data["url"]),
            status=HistoryStatus(data["status"]),
            duration_ms=int(data.get("duration_ms", 0)),
            values=tuple(str(v) for v in values),
            created_at=datetime.fromisoformat(data["created_at"]),
            error_message=data.get("error_message"),
        )


LocatorKind = Literal["path", "attribute"]


@dataclass(frozen=True)
class Locator:
    """Element lookup strategy, resolved once when settings are loaded."""

    kind: LocatorKind
    expr: str

    @classmethod
    def parse(cls, raw: str) -> "Locator":
        expr = raw.strip()
        if expr.startswith("//") or expr.startswith("(//"):
            return cls(kind="path", expr=expr)
        return cls(kind="attribute", expr=expr)

    def to_selector(self) -> str:
        """Selector string understood by Playwright."""
        if self.kind == "path":
            return f"xpath={self.expr}"
        return self.expr

    def __str__(self) -> str:
        return self.expr


@dataclass(frozen=True)
class PipelineOptions:
    """Per-run configuration consumed read-only by the orchestrator."""

    field_locator: Locator
    submit_locator: Locator
    loading_locator: Optional[Locator] = None
    headless: bool = True
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    timeout_ms: int = 30000
    navigation_timeout_ms: int = 10000
    grace_delay_ms: int = 1000
    auto_retry: bool = False
    screenshot_width: int = 640
