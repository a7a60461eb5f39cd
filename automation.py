"""Orchestrator that fills and submits the same form in several browsers at once."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from automation_types import (
    HistoryStatus,
    InstanceSnapshot,
    InstanceStatus,
    PipelineOptions,
    RunSnapshot,
    RunStatus,
    StepStatus,
    duration_ms,
)
from browser import BrowserInstance, SimpleBrowser
from exceptions import (
    AutomationAlreadyRunningError,
    FormFillError,
    RunCancelledError,
    StageError,
)
from history import HistoryRecorder
from screenshots import ScreenshotCollector
from steps import BROWSERS, FILL, SCAN, SUBMIT, StepTracker, default_pipeline

CANCEL_MESSAGE = "Automation cancelled by user"
INTERRUPTED_MESSAGE = "Automation interrupted"

BrowserFactory = Callable[[PipelineOptions], Any]


def _reason(exc: BaseException) -> str:
    if isinstance(exc, FormFillError):
        return exc.message
    return str(exc) or type(exc).__name__


class _Run:
    """Mutable state of one run. Only the orchestrator touches it."""

    def __init__(
        self,
        url: str,
        values: Sequence[str],
        options: PipelineOptions,
        clock: Callable[[], datetime],
    ):
        self.url = url
        self.values = list(values)
        self.options = options
        self.status = RunStatus.RUNNING
        self.tracker = StepTracker(clock)
        self.started_at = clock()
        self.ended_at: Optional[datetime] = None
        self.error_message: Optional[str] = None
        self.instances: List[BrowserInstance] = []
        self.snapshots: Tuple[InstanceSnapshot, ...] = tuple(
            InstanceSnapshot(id=slot, value=value, status=InstanceStatus.LOADING)
            for slot, value in enumerate(self.values, start=1)
        )
        self.cancelled = False
        self.recorded = False
        self.task: Optional[asyncio.Task] = None

    @property
    def terminal(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.ERROR)

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            status=self.status,
            steps=self.tracker.snapshot(),
            instances=self.snapshots,
            url=self.url,
            started_at=self.started_at,
            ended_at=self.ended_at,
            error_message=self.error_message,
        )


class AutomationOrchestrator:
    """Drives at most one run at a time through browsers -> fill -> submit.

    Every stage fans out across all instances and joins before the next
    stage begins. The first instance failure decides the stage outcome,
    but the remaining instances are still awaited so nothing is left
    running against a browser that is about to be closed.

    Status readers get a RunSnapshot copy and never see live state.
    """

    def __init__(
        self,
        history: HistoryRecorder,
        browser_factory: Optional[BrowserFactory] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.history = history
        self.logger = logger or logging.getLogger("formfill.automation")
        self._browser_factory = browser_factory or self._default_browser_factory
        self._clock = clock or datetime.now
        self._run: Optional[_Run] = None
        self._running = False

    def _default_browser_factory(self, options: PipelineOptions) -> SimpleBrowser:
        return SimpleBrowser(
            browser_type=options.browser_type,
            headless=options.headless,
            logger=self.logger,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    # ─────────────────────────────────────────────────────────────────────────
    # Public surface
    # ─────────────────────────────────────────────────────────────────────────

    def get_status(self) -> RunSnapshot:
        """Return a copy of the current run; idle if nothing has run yet."""
        if self._run is None:
            return RunSnapshot(status=RunStatus.IDLE)
        return self._run.snapshot()

    async def start(self, url: str, values: Sequence[str], options: PipelineOptions) -> asyncio.Task:
        """Accept a run and schedule it in the background.

        Raises AutomationAlreadyRunningError without touching the active
        run if one is in progress.
        """
        if self._running:
            raise AutomationAlreadyRunningError()
        if not values:
            raise ValueError("At least one fill value is required")

        self._running = True
        run = _Run(url, values, options, self._clock)
        run.tracker.initialize(default_pipeline(run.values))
        run.tracker.advance(SCAN, BROWSERS)
        self._run = run

        self.logger.info(f"Starting automation for {url} with {len(run.values)} instance(s)")
        run.task = asyncio.create_task(self._execute(run), name="formfill-run")
        return run.task

    async def wait(self) -> RunSnapshot:
        """Wait for the current run's pipeline to finish.

        Cancelling the waiter leaves the pipeline running so the caller
        can still cancel() it and have it recorded as cancelled.
        """
        run = self._run
        if run is not None and run.task is not None:
            await asyncio.shield(run.task)
        return self.get_status()

    async def run(self, url: str, values: Sequence[str], options: PipelineOptions) -> RunSnapshot:
        """Start a run and wait for it to finish."""
        await self.start(url, values, options)
        return await self.wait()

    async def cancel(self) -> bool:
        """Cancel the active run. Returns False if nothing was running."""
        run = self._run
        if not self._running or run is None or run.terminal:
            return False

        self.logger.info("Cancelling automation")
        run.cancelled = True
        run.tracker.fail_current(CANCEL_MESSAGE, fallback_id=SUBMIT)
        run.status = RunStatus.ERROR
        run.error_message = CANCEL_MESSAGE
        run.ended_at = self._clock()

        self._record(run)
        await self._cleanup(run)
        if self._run is run:
            self._running = False
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────────────────

    async def _execute(self, run: _Run) -> None:
        try:
            # cancel() may land before the task first runs
            self._check_cancelled(run)
            await self._launch_stage(run)
            self._check_cancelled(run)
            run.tracker.advance(BROWSERS, FILL)
            await self._checkpoint(run)
            self.logger.info("Browsers launched successfully")

            self._check_cancelled(run)
            await self._fill_stage(run)
            self._check_cancelled(run)
            run.tracker.advance(FILL, SUBMIT)
            await self._checkpoint(run)
            self.logger.info("Forms filled successfully")

            self._check_cancelled(run)
            await self._submit_stage(run)
            self._check_cancelled(run)
            run.tracker.update(SUBMIT, StepStatus.SUCCESS)
            await self._checkpoint(run)
            self._check_cancelled(run)

            run.status = RunStatus.COMPLETED
            run.ended_at = self._clock()
            self.logger.info("Automation completed successfully")
        except RunCancelledError:
            self.logger.info("Pipeline stopped after cancellation")
        except asyncio.CancelledError:
            if not run.cancelled:
                self._fail(run, INTERRUPTED_MESSAGE)
            raise
        except Exception as exc:
            if run.cancelled:
                self.logger.info(f"Stage aborted after cancellation: {_reason(exc)}")
            else:
                self.logger.error(f"Automation error: {_reason(exc)}")
                self._fail(run, _reason(exc))
                await self._checkpoint(run, final=True)
        finally:
            await self._cleanup(run)
            self._record(run)
            if self._run is run:
                self._running = False

    def _check_cancelled(self, run: _Run) -> None:
        if run.cancelled:
            raise RunCancelledError()

    def _fail(self, run: _Run, message: str) -> None:
        """Mark the in-progress step (or submit) failed and end the run."""
        run.tracker.fail_current(message, fallback_id=SUBMIT)
        run.status = RunStatus.ERROR
        run.error_message = message
        run.ended_at = self._clock()

    async def _fan_out(
        self,
        run: _Run,
        stage: str,
        label: str,
        operation: Callable[[BrowserInstance], Awaitable[Any]],
    ) -> None:
        """Run operation on every instance concurrently; raise the first failure."""
        failures: List[StageError] = []

        async def guarded(instance: BrowserInstance) -> None:
            try:
                await operation(instance)
            except Exception as exc:
                self.logger.error(f"Instance {instance.slot} failed during {stage}: {_reason(exc)}")
                failures.append(
                    StageError(stage, f"{label} in instance {instance.slot}: {_reason(exc)}", slot=instance.slot)
                )

        await asyncio.gather(*(guarded(instance) for instance in list(run.instances)))
        if failures:
            raise failures[0]

    async def _launch_stage(self, run: _Run) -> None:
        options = run.options
        run.instances = [
            BrowserInstance(slot, value, self._browser_factory(options), logger=self.logger)
            for slot, value in enumerate(run.values, start=1)
        ]
        await self._fan_out(
            run, BROWSERS, "Failed to open browsers", lambda instance: instance.open(run.url, options)
        )

    async def _fill_stage(self, run: _Run) -> None:
        options = run.options
        await self._fan_out(run, FILL, "Failed to fill form", lambda instance: instance.fill(options))

    async def _submit_stage(self, run: _Run) -> None:
        options = run.options
        await self._fan_out(run, SUBMIT, "Failed to submit form", lambda instance: instance.submit(options))

    async def _checkpoint(self, run: _Run, final: bool = False) -> None:
        """Replace the run's instance snapshots with fresh screenshots."""
        live = [instance for instance in run.instances if not instance.closed]
        if not live:
            return
        collector = ScreenshotCollector(
            timeout_ms=run.options.timeout_ms,
            max_width=run.options.screenshot_width,
            logger=self.logger,
        )
        try:
            snapshots = await collector.collect(live)
        except Exception as exc:
            if not final:
                raise
            self.logger.error(f"Error capturing final screenshots: {exc}")
            return
        # A terminal run is frozen, except for the failure checkpoint itself.
        if run.cancelled or (run.terminal and not final):
            return
        run.snapshots = tuple(snapshots)

    # ─────────────────────────────────────────────────────────────────────────
    # Termination
    # ─────────────────────────────────────────────────────────────────────────

    async def _cleanup(self, run: _Run) -> None:
        """Close every instance of the run; failures are logged, never raised."""
        instances, run.instances = run.instances, []
        if not instances:
            return
        results = await asyncio.gather(
            *(instance.close() for instance in instances),
            return_exceptions=True,
        )
        for instance, result in zip(instances, results):
            if isinstance(result, BaseException):
                self.logger.error(f"Error closing browser for instance {instance.slot}: {result}")

    def _record(self, run: _Run) -> None:
        """Write the run's single history record."""
        if run.recorded:
            return
        run.recorded = True

        if run.cancelled:
            status = HistoryStatus.CANCELLED
        elif run.status == RunStatus.COMPLETED:
            status = HistoryStatus.SUCCESS
        else:
            status = HistoryStatus.FAILED
        ended_at = run.ended_at or self._clock()

        try:
            self.history.add(
                url=run.url,
                status=status,
                duration_ms=duration_ms(run.started_at, ended_at),
                values=run.values,
                error_message=run.error_message,
            )
        except Exception:
            self.logger.exception("Failed to record automation history")
