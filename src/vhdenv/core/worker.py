"""
vhdenv lifecycle worker.

Runs one lifecycle task on a background thread, so the foreground can keep
rendering the messages the task publishes. There is exactly one worker per
process invocation; tasks are never queued or run side by side.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from vhdenv.core.errors import ExitCode
from vhdenv.core.logging import get_logger

if TYPE_CHECKING:
    from vhdenv.core.orchestrator import LifecycleOrchestrator, LifecycleTask

logger = get_logger(__name__)


class LifecycleWorker:
    """A single lifecycle task executed on a daemon thread."""

    def __init__(
        self,
        orchestrator: LifecycleOrchestrator,
        task: LifecycleTask,
        drive: str | None,
        disk_file: str | Path | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.task = task
        self.drive = drive
        self.disk_file = disk_file
        self.exit_code: ExitCode | None = None
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self._done = threading.Event()
        self._callbacks: list[Callable[[ExitCode], None]] = []
        self._thread: threading.Thread | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_done_callback(self, callback: Callable[[ExitCode], None]) -> None:
        """Callback invoked on the worker thread once the task has finished."""
        self._callbacks.append(callback)

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Worker already started")
        self._thread = threading.Thread(
            target=self._execute,
            name=f"lifecycle-{self.task.value}",
            daemon=True,
        )
        self._thread.start()

    def wait(self, timeout: float | None = None) -> ExitCode | None:
        """Block until the task is done. Returns None on timeout."""
        self._done.wait(timeout)
        return self.exit_code

    def run_sync(self) -> ExitCode:
        """Run the task on the calling thread."""
        self._execute()
        return self.exit_code  # type: ignore[return-value]

    def _execute(self) -> None:
        self.started_at = datetime.now()
        logger.info("Worker started", task=self.task.value, drive=self.drive)

        try:
            self.exit_code = self.orchestrator.run(self.task, self.drive, self.disk_file)
        except Exception as e:
            logger.error("Worker failed", task=self.task.value, error=str(e))
            self.exit_code = ExitCode.FAILURE
        finally:
            self.completed_at = datetime.now()
            self._done.set()

        logger.info(
            "Worker finished",
            task=self.task.value,
            exit_code=int(self.exit_code),
            duration_seconds=self.duration_seconds,
        )
        for callback in self._callbacks:
            try:
                callback(self.exit_code)
            except Exception as e:
                logger.warning("Done callback error", error=str(e))
