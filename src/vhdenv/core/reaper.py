"""
vhdenv process reaper.

Stops every process whose executable lives on the environment drive, so
the disk can be detached. Termination escalates in three stages: close the
main window, kill the process tree with taskkill, then force kill. A process
that resists all of it is abandoned with a warning; it must never block the
detach forever.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import psutil

from vhdenv.core.logging import get_logger
from vhdenv.core.messages import Severity

if TYPE_CHECKING:
    from vhdenv.core.config import ReaperConfig
    from vhdenv.core.messages import Notifier
    from vhdenv.core.models import ManagedProcess
    from vhdenv.platform.base import PlatformBackend

logger = get_logger(__name__)


class ProcessReaper:
    """Escalating termination of the processes running from a drive."""

    CONTEXT = "Detach"

    def __init__(
        self,
        backend: PlatformBackend,
        notifier: Notifier,
        config: ReaperConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.notifier = notifier
        self.settle_seconds = config.settle_seconds
        self.force_attempts = config.force_attempts
        self.excluded = {name.lower() for name in config.excluded_process_names}
        self.sleep = sleep

    def _is_excluded(self, process: ManagedProcess) -> bool:
        name = process.name.lower()
        if name.endswith(".exe"):
            name = name[:-4]
        return name in self.excluded

    def find(self, drive_prefix: str) -> list[ManagedProcess]:
        """
        Processes currently running from the drive, minus the host: this
        process, its ancestors and the configured host process names.
        """
        host = self.backend.host_process_ids()
        return [
            p
            for p in self.backend.processes_on(drive_prefix)
            if p.pid not in host and not self._is_excluded(p)
        ]

    def terminate(self, drive_prefix: str) -> None:
        processes = self.find(drive_prefix)
        if not processes:
            return

        logger.info("Stopping processes", drive=drive_prefix, count=len(processes))
        self.notifier.publish(
            Severity.TRACE,
            self.CONTEXT,
            f"Stopping {len(processes)} programs still running from {drive_prefix}",
        )

        for process in processes:
            try:
                self.backend.close_main_window(process.pid)
            except Exception as e:
                logger.debug("Close window failed", pid=process.pid, error=str(e))
        self.sleep(self.settle_seconds)

        for process in self.find(drive_prefix):
            result = self.backend.kill_tree(process.pid)
            if not result.success:
                logger.debug("Tree kill failed", pid=process.pid, stderr=result.stderr.strip())
        self.sleep(self.settle_seconds / 2)

        self._force(self.find(drive_prefix))

    def _force(self, processes: Iterable[ManagedProcess]) -> None:
        # Killing can be blocked for a while, e.g. by a virus scanner holding
        # the process. After the last attempt the process is left behind.
        for process in processes:
            error: Exception | None = None
            for _ in range(self.force_attempts):
                self.sleep(self.settle_seconds / 2)
                try:
                    if not self.backend.process_exists(process.pid):
                        break
                    self.backend.kill_process(process.pid)
                except psutil.NoSuchProcess:
                    break
                except Exception as e:
                    logger.debug("Force kill failed", pid=process.pid, error=str(e))
                    error = e
            else:
                if self.backend.process_exists(process.pid):
                    logger.warning("Process resisted termination", pid=process.pid, name=process.name, error=str(error))
                    self.notifier.publish(
                        Severity.WARNING,
                        self.CONTEXT,
                        f"{process.name} could not be stopped: {error or 'still running'}",
                    )
