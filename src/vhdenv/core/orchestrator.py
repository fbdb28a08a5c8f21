"""
vhdenv lifecycle orchestrator.

Sequences one lifecycle task end to end and is the only place where lifecycle
errors are caught. Each task publishes its progress, and every outcome ends
with an Exit message and an ExitCode:

- attach: attach the disk, customize files, run the startup script.
- create: create and provision the disk, roll back on failure.
- compact: attach, clean transient directories, detach, compact.
- detach: run the shutdown script, stop remaining programs, detach.
- shortcuts: write attach/detach/compact shortcuts beside the disk file.
"""

from __future__ import annotations

import shutil
import sys
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from vhdenv import __version__
from vhdenv.core.config import VhdEnvConfig, settings_file_for
from vhdenv.core.diskpart import DiskpartInvoker
from vhdenv.core.errors import ExitCode, LifecycleError, ToolFailure
from vhdenv.core.lifecycle import DiskLifecycle
from vhdenv.core.logging import OperationLogger, get_logger
from vhdenv.core.messages import Severity
from vhdenv.core.mirror import TemplateFileMirror
from vhdenv.core.models import DiskImage
from vhdenv.core.reaper import ProcessReaper
from vhdenv.core.supervisor import BatchSupervisor

if TYPE_CHECKING:
    from vhdenv.core.messages import Notifier
    from vhdenv.core.mirror import SettingsMirror
    from vhdenv.platform.base import PlatformBackend

logger = get_logger(__name__)

TEMP_DIRECTORY = "Temp"
RECYCLE_BIN_DIRECTORY = "$RECYCLE.BIN"

COMPLETED = "Completed"
BATCH_FAILED = "The environment script reported an error"
SHORTCUT_FAILED = "The shortcut could not be created"
UNEXPECTED = "Unexpected error"


class LifecycleTask(Enum):
    """Tasks understood by the orchestrator."""

    ATTACH = "attach"
    CREATE = "create"
    COMPACT = "compact"
    DETACH = "detach"
    SHORTCUTS = "shortcuts"
    USAGE = "usage"

    @classmethod
    def parse(cls, value: str | None) -> LifecycleTask:
        """Task for a command line word, USAGE for anything unknown."""
        try:
            task = cls((value or "").strip().lower())
        except ValueError:
            return cls.USAGE
        return task


USAGE = "usage: vhdenv DRIVE TASK [--disk FILE] [--config FILE]\n" + "TASK: " + ", ".join(
    task.value for task in LifecycleTask if task is not LifecycleTask.USAGE
)


class LifecycleOrchestrator:
    """Runs lifecycle tasks against one platform backend."""

    CREATE = DiskLifecycle.CREATE
    ATTACH = DiskLifecycle.ATTACH
    DETACH = DiskLifecycle.DETACH
    COMPACT = DiskLifecycle.COMPACT
    SHORTCUTS = "Shortcuts"

    def __init__(
        self,
        backend: PlatformBackend,
        notifier: Notifier,
        config: VhdEnvConfig | None = None,
        lifecycle: DiskLifecycle | None = None,
        supervisor: BatchSupervisor | None = None,
        reaper: ProcessReaper | None = None,
        mirror: SettingsMirror | None = None,
        launcher: str | None = None,
    ) -> None:
        self.backend = backend
        self.notifier = notifier
        self.config = config or VhdEnvConfig()
        self.lifecycle = lifecycle or DiskLifecycle(
            backend,
            DiskpartInvoker(backend, self.config.disk),
            notifier,
            self.config.disk,
        )
        self.supervisor = supervisor or BatchSupervisor(self.config.supervisor)
        self.reaper = reaper or ProcessReaper(backend, notifier, self.config.reaper)
        self.mirror = mirror or TemplateFileMirror(
            backend,
            notifier,
            self.config.environment.customs,
            self.config.environment.values,
        )
        self.launcher = launcher or str(Path(sys.argv[0]).absolute())

    def _trace(self, context: str, text: str = "") -> None:
        self.notifier.publish(Severity.TRACE, context, text)

    # ==================== Entry Point ====================

    def run(self, task: LifecycleTask, drive: str | None, disk_file: str | Path | None = None) -> ExitCode:
        """Run a task to completion. Never raises."""
        if task is LifecycleTask.USAGE or drive is None:
            return self.usage()

        try:
            disk = DiskImage.of(drive, disk_file or self.config.environment.resolve_disk_file())
        except ValueError:
            return self.usage()

        handlers = {
            LifecycleTask.ATTACH: self.attach,
            LifecycleTask.CREATE: self.create,
            LifecycleTask.COMPACT: self.compact,
            LifecycleTask.DETACH: self.detach,
            LifecycleTask.SHORTCUTS: self.shortcuts,
        }

        exit_code = ExitCode.SUCCESS
        try:
            with OperationLogger(task.value, logger, drive=disk.drive, disk_file=str(disk.file)):
                handlers[task](disk)
        except LifecycleError as e:
            self.report(e)
            exit_code = e.exit_code
        except Exception as e:
            self.notifier.publish(Severity.ERROR, UNEXPECTED, f"{type(e).__name__}: {e}")
            exit_code = ExitCode.FAILURE
        finally:
            self.notifier.publish(Severity.EXIT, "", data=int(exit_code))
        return exit_code

    def usage(self) -> ExitCode:
        self.notifier.publish(Severity.ERROR, f"vhdenv {__version__}", USAGE)
        self.notifier.publish(Severity.EXIT, "", data=int(ExitCode.USAGE))
        return ExitCode.USAGE

    def report(self, error: LifecycleError) -> None:
        """Error message plus the raw diagnostic output, if any."""
        self.notifier.publish(Severity.ERROR, error.context, error.message)
        if error.output:
            self.notifier.publish(Severity.TRACE, error.context, error.output)

    # ==================== Tasks ====================

    def attach(self, disk: DiskImage) -> None:
        self.lifecycle.attach(disk)

        self._trace(self.ATTACH, "Preparing the environment")
        self.mirror.apply(disk.drive)

        self._trace(self.ATTACH, "Starting the environment")
        script = self.backend.drive_path(disk.drive) / self.config.supervisor.startup_script
        result = self.supervisor.run(
            script,
            [self.config.supervisor.attach_argument],
            self.environment(disk),
            context=self.ATTACH,
        )
        if result.failed:
            raise ToolFailure(self.ATTACH, result.message or BATCH_FAILED, result.output)

        self._trace(self.ATTACH, COMPLETED)

    def create(self, disk: DiskImage) -> None:
        try:
            self.lifecycle.create(disk)
        except LifecycleError as e:
            if e.rollback_required:
                self._trace(self.CREATE, "Rolling back")
                self.lifecycle.abort(disk)
            raise
        except Exception:
            self._trace(self.CREATE, "Rolling back")
            self.lifecycle.abort(disk)
            raise

        self.write_settings(disk)
        self._trace(self.CREATE, COMPLETED)

    def compact(self, disk: DiskImage) -> None:
        self.lifecycle.attach(disk)

        self._trace(self.COMPACT, "Cleaning up the file system")
        root = self.backend.drive_path(disk.drive)
        self._delete(root / TEMP_DIRECTORY)
        try:
            (root / TEMP_DIRECTORY).mkdir(exist_ok=True)
        except OSError as e:
            logger.debug("Temp directory not recreated", error=str(e))
        self._delete(root / RECYCLE_BIN_DIRECTORY)

        self.lifecycle.detach(disk)
        self.lifecycle.compact(disk)
        self._trace(self.COMPACT, COMPLETED)

    def detach(self, disk: DiskImage) -> None:
        self.lifecycle.can_detach(disk)

        batch_failure: ToolFailure | None = None
        script = self.backend.drive_path(disk.drive) / self.config.supervisor.startup_script
        if self.backend.drive_exists(disk.drive):
            self._trace(self.DETACH, "Stopping the environment")
            try:
                result = self.supervisor.run(
                    script,
                    [self.config.supervisor.detach_argument],
                    self.environment(disk),
                    keep_inherited=True,
                    context=self.DETACH,
                )
                if result.failed:
                    batch_failure = ToolFailure(self.DETACH, result.message or BATCH_FAILED, result.output)
            except ToolFailure as e:
                batch_failure = e
            if batch_failure is not None:
                logger.warning("Shutdown script failed", error=str(batch_failure))
                self.notifier.publish(Severity.WARNING, self.DETACH, batch_failure.message)

        self.reaper.terminate(disk.mount_point)
        self.lifecycle.detach(disk)

        if batch_failure is not None:
            raise batch_failure
        self._trace(self.DETACH, COMPLETED)

    def shortcuts(self, disk: DiskImage) -> None:
        self._trace(self.SHORTCUTS, "Creating shortcuts")
        for task in (LifecycleTask.ATTACH, LifecycleTask.DETACH, LifecycleTask.COMPACT):
            shortcut = disk.file.with_name(f"{disk.name}.{task.value}.lnk")
            shortcut.unlink(missing_ok=True)
            result = self.backend.create_shortcut(shortcut, self.launcher, f"{disk.drive} {task.value}")
            if not result.success:
                raise ToolFailure(
                    self.SHORTCUTS,
                    SHORTCUT_FAILED,
                    result.error or result.stderr or result.stdout,
                )
        self._trace(self.SHORTCUTS, COMPLETED)

    # ==================== Helpers ====================

    def environment(self, disk: DiskImage) -> dict[str, str]:
        """Variables handed to the environment script."""
        values = dict(self.config.environment.values)
        values.update(
            {
                "PLATFORM_NAME": disk.name,
                "PLATFORM_HOME": str(disk.file.parent),
                "PLATFORM_DISK": str(disk.file),
                "PLATFORM_APP": self.launcher,
                "PLATFORM_HOMEDRIVE": disk.drive,
            }
        )
        return values

    def write_settings(self, disk: DiskImage) -> None:
        """Default settings file beside a new disk, unless one exists."""
        settings_file = settings_file_for(disk.file)
        if settings_file.exists():
            return
        config = self.config.model_copy(deep=True)
        config.environment.name = disk.name
        config.environment.home = disk.file.parent
        config.environment.disk_file = disk.file
        config.save(settings_file)
        logger.info("Settings file written", settings_file=str(settings_file))

    @staticmethod
    def _delete(path: Path) -> None:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
        except OSError as e:
            logger.debug("Cleanup skipped", path=str(path), error=str(e))
