"""
Tests for vhdenv.core.worker module.
"""

import threading
from unittest.mock import Mock

import pytest

from vhdenv.core.errors import ExitCode
from vhdenv.core.orchestrator import LifecycleOrchestrator, LifecycleTask
from vhdenv.core.worker import LifecycleWorker


@pytest.fixture
def orchestrator() -> Mock:
    orchestrator = Mock(spec=LifecycleOrchestrator)
    orchestrator.run.return_value = ExitCode.SUCCESS
    return orchestrator


class TestLifecycleWorker:
    """Tests for LifecycleWorker."""

    def test_runs_task_on_background_thread(self, orchestrator: Mock) -> None:
        threads: list[threading.Thread] = []
        orchestrator.run.side_effect = lambda *args: threads.append(threading.current_thread()) or ExitCode.SUCCESS

        worker = LifecycleWorker(orchestrator, LifecycleTask.ATTACH, "E:", "D:\\work.vhdx")
        worker.start()

        assert worker.wait(timeout=5) == ExitCode.SUCCESS
        assert threads[0] is not threading.current_thread()
        assert threads[0].daemon
        orchestrator.run.assert_called_once_with(LifecycleTask.ATTACH, "E:", "D:\\work.vhdx")
        assert worker.duration_seconds is not None

    def test_run_sync(self, orchestrator: Mock) -> None:
        orchestrator.run.return_value = ExitCode.ABORTED
        worker = LifecycleWorker(orchestrator, LifecycleTask.DETACH, "E:")
        assert worker.run_sync() == ExitCode.ABORTED

    def test_crash_is_failure(self, orchestrator: Mock) -> None:
        orchestrator.run.side_effect = RuntimeError("boom")
        worker = LifecycleWorker(orchestrator, LifecycleTask.DETACH, "E:")
        assert worker.run_sync() == ExitCode.FAILURE

    def test_done_callback(self, orchestrator: Mock) -> None:
        results: list[ExitCode] = []
        worker = LifecycleWorker(orchestrator, LifecycleTask.COMPACT, "E:")
        worker.add_done_callback(results.append)
        worker.add_done_callback(Mock(side_effect=ValueError("ignored")))

        worker.run_sync()

        assert results == [ExitCode.SUCCESS]

    def test_start_twice(self, orchestrator: Mock) -> None:
        worker = LifecycleWorker(orchestrator, LifecycleTask.ATTACH, "E:")
        worker.start()
        with pytest.raises(RuntimeError):
            worker.start()
        worker.wait(timeout=5)
