"""Ordered step list reported to clients while a run progresses."""
from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from automation_types import Step, StepStatus

SCAN = "scan"
BROWSERS = "browsers"
FILL = "fill"
SUBMIT = "submit"


@dataclass(frozen=True)
class StepDefinition:
    """Static description of one pipeline step."""

    id: str
    title: str
    description: str


def default_pipeline(values: Sequence[str]) -> Tuple[StepDefinition, ...]:
    """The fixed scan -> browsers -> fill -> submit pipeline."""
    if len(values) == 2:
        value_text = f"{values[0]} and {values[1]}"
    else:
        value_text = ", ".join(values)
    return (
        StepDefinition(SCAN, "Scan QR Code", "Successfully scanned QR code and extracted URL"),
        StepDefinition(
            BROWSERS,
            "Opening browsers",
            f"Launching {len(values)} browser instances with the extracted URL",
        ),
        StepDefinition(FILL, "Filling forms", f"Finding text fields and entering values ({value_text})"),
        StepDefinition(SUBMIT, "Submitting forms", "Clicking submit buttons on all forms"),
    )


class StepTracker:
    """Holds step states for one run.

    Updates never raise: an unknown step id is ignored so that reporting
    cannot break the stage that is being reported on.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now
        self._steps: List[Step] = []

    def initialize(self, pipeline: Sequence[StepDefinition]) -> None:
        """Reset to the given pipeline with the first step in progress."""
        now = self._clock()
        self._steps = [Step(id=d.id, title=d.title, description=d.description) for d in pipeline]
        if self._steps:
            self._steps[0].status = StepStatus.IN_PROGRESS
            self._steps[0].updated_at = now

    def update(
        self,
        step_id: str,
        status: StepStatus,
        error_message: Optional[str] = None,
    ) -> None:
        step = self.get(step_id)
        if step is None:
            return
        step.status = status
        step.updated_at = self._clock()
        if error_message is not None:
            step.error_message = error_message

    def advance(self, finished_id: str, next_id: Optional[str] = None) -> None:
        """Mark one step successful and start the next one."""
        self.update(finished_id, StepStatus.SUCCESS)
        if next_id is not None:
            self.update(next_id, StepStatus.IN_PROGRESS)

    def get(self, step_id: str) -> Optional[Step]:
        for step in self._steps:
            if step.id == step_id:
                return step
        return None

    def current(self) -> Optional[Step]:
        """The step currently in progress, if any."""
        for step in self._steps:
            if step.status == StepStatus.IN_PROGRESS:
                return step
        return None

    def fail_current(self, error_message: str, fallback_id: str = SUBMIT) -> Optional[str]:
        """Mark the in-progress step (or fallback_id) as failed.

        Returns the id of the step that was marked.
        """
        step = self.current()
        step_id = step.id if step is not None else fallback_id
        if self.get(step_id) is None:
            return None
        self.update(step_id, StepStatus.ERROR, error_message)
        return step_id

    def snapshot(self) -> Tuple[Step, ...]:
        return tuple(copy.deepcopy(self._steps))
