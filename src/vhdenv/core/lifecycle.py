"""
vhdenv disk lifecycle.

Precondition checks and the four disk operations. Every check re-reads the
live OS state (is the drive mounted, does the file exist, what runs from the
drive) instead of trusting anything cached, which makes the operations safe
to re-run after a crash.
"""

from __future__ import annotations

from importlib import resources
from pathlib import PureWindowsPath
from typing import TYPE_CHECKING

import humanize

from vhdenv import __version__
from vhdenv.core.errors import LifecycleError, PreconditionError, RollbackError, ToolFailure
from vhdenv.core.logging import get_logger
from vhdenv.core.messages import Severity
from vhdenv.core.models import DiskImage
from vhdenv.core.templates import (
    AttachProperties,
    CompactProperties,
    CreateProperties,
    DetachProperties,
    ScriptTask,
    fill_placeholders,
)

if TYPE_CHECKING:
    from vhdenv.core.config import DiskConfig
    from vhdenv.core.diskpart import DiskpartInvoker
    from vhdenv.core.messages import Notifier
    from vhdenv.core.models import ExecutionResult
    from vhdenv.platform.base import PlatformBackend

logger = get_logger(__name__)

SKELETON_DIRECTORIES = (
    "Documents/Music",
    "Documents/Pictures",
    "Documents/Videos",
    "Programs/Macros/macros",
    "Resources",
    "Settings",
    "Storage",
    "Temp",
)

# (resource path, placeholders filled)
BOOTSTRAP_FILES = (
    ("Programs/Macros/macros.cmd", False),
    ("Programs/Macros/macro.cmd", False),
    ("AutoRun.inf", True),
    ("Startup.cmd", True),
)

FILE_NOT_EXISTS = "The disk file does not exist"
FILE_ALREADY_EXISTS = "The disk file already exists"
DRIVE_ALREADY_EXISTS = "The drive is already in use"
DRIVE_ALREADY_USED = "The drive is already in use by another volume or by running programs"
DRIVE_STILL_ATTACHED = "The drive is still attached"
UNEXPECTED_ERROR = "An unexpected error occurred in diskpart"


def read_resource(path: str) -> bytes:
    """Bootstrap file shipped with the package."""
    resource = resources.files("vhdenv").joinpath("resources", "platform", *PureWindowsPath(path).parts)
    return resource.read_bytes()


class DiskLifecycle:
    """Creates, attaches, detaches and compacts a virtual disk."""

    CREATE = "Create"
    ATTACH = "Attach"
    DETACH = "Detach"
    COMPACT = "Compact"

    def __init__(
        self,
        backend: PlatformBackend,
        invoker: DiskpartInvoker,
        notifier: Notifier,
        config: DiskConfig,
    ) -> None:
        self.backend = backend
        self.invoker = invoker
        self.notifier = notifier
        self.config = config

    def _trace(self, context: str, text: str = "") -> None:
        self.notifier.publish(Severity.TRACE, context, text)

    def _mounted(self, disk: DiskImage) -> bool:
        return self.backend.drive_exists(disk.drive)

    def _check(self, context: str, result: ExecutionResult) -> None:
        if result.failed:
            raise ToolFailure(context, result.message or UNEXPECTED_ERROR, result.output)

    # ==================== Preconditions ====================

    def can_create(self, disk: DiskImage) -> None:
        if self._mounted(disk):
            raise PreconditionError(self.CREATE, DRIVE_ALREADY_EXISTS)
        if disk.file.exists():
            raise PreconditionError(self.CREATE, FILE_ALREADY_EXISTS)

    def can_attach(self, disk: DiskImage) -> None:
        if self._mounted(disk):
            label = self.backend.get_volume_label(disk.drive) or ""
            if (
                label.lower() != disk.name.lower()
                or self.backend.processes_on(disk.mount_point)
                or not self.backend.is_virtual_disk(disk.drive)
            ):
                raise PreconditionError(self.ATTACH, DRIVE_ALREADY_USED)
            return
        if not disk.file.exists():
            raise PreconditionError(self.ATTACH, FILE_NOT_EXISTS)

    def can_detach(self, disk: DiskImage) -> None:
        if not disk.file.exists():
            raise PreconditionError(self.DETACH, FILE_NOT_EXISTS)

    def can_compact(self, disk: DiskImage) -> None:
        if not disk.file.exists():
            raise PreconditionError(self.COMPACT, FILE_NOT_EXISTS)
        if self._mounted(disk):
            raise PreconditionError(self.COMPACT, DRIVE_STILL_ATTACHED)

    # ==================== Operations ====================

    def create(self, disk: DiskImage) -> None:
        """
        Create the disk file, then attach it, lay out the directory skeleton,
        write the bootstrap files and detach again.

        Every failure after the precondition check is flagged as requiring a
        rollback, since the disk may be left attached.
        """
        self._trace(self.CREATE)
        self.can_create(disk)

        try:
            properties = CreateProperties(
                file=str(disk.file),
                type=self.config.type,
                size=self.config.size_mb,
                style=self.config.style,
                format=self.config.format,
                name=disk.name,
            )
            size = humanize.naturalsize(self.config.size_mb * 1024 * 1024, binary=True)
            self._trace(self.CREATE, f"Creating {self.config.type} disk of {size}")
            self._check(self.CREATE, self.invoker.run(ScriptTask.CREATE, properties))

            self.attach(disk)

            self._trace(self.CREATE, "Initializing the file system")
            self.provision(disk)

            self.detach(disk)
        except PreconditionError as e:
            # The disk file exists by now, a retry would not succeed
            raise ToolFailure(e.context, e.message, e.output, rollback_required=True) from e
        except LifecycleError as e:
            e.rollback_required = True
            raise
        except OSError as e:
            raise ToolFailure(
                self.CREATE,
                "Initialization of the file system failed",
                str(e),
                rollback_required=True,
            ) from e

    def provision(self, disk: DiskImage) -> None:
        """Directory skeleton and bootstrap files of a new environment."""
        root = self.backend.drive_path(disk.drive)
        for directory in SKELETON_DIRECTORIES:
            (root / directory).mkdir(parents=True, exist_ok=True)

        replacements = {
            "drive": disk.drive,
            "name": disk.name,
            "version": f"{__version__.split('.')[0]}.x",
        }
        for path, templated in BOOTSTRAP_FILES:
            content = read_resource(path)
            if templated:
                text = fill_placeholders(content.decode("ascii"), replacements)
                content = text.encode("ascii")
            target = root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

    def attach(self, disk: DiskImage) -> None:
        self._trace(self.ATTACH)
        self.can_attach(disk)

        if self._mounted(disk):
            self._trace(self.ATTACH, f"Using the existing drive {disk.drive}")
            return

        self._trace(self.ATTACH, f"Attaching the disk as drive {disk.drive}")
        properties = AttachProperties(file=str(disk.file), drive=disk.letter)
        self._check(self.ATTACH, self.invoker.run(ScriptTask.ATTACH, properties))

    def detach(self, disk: DiskImage) -> None:
        self._trace(self.DETACH)
        self.can_detach(disk)

        self._trace(self.DETACH, "Detaching the disk")
        result = self.invoker.run(ScriptTask.DETACH, DetachProperties(file=str(disk.file)))
        self._check(self.DETACH, result)

    def compact(self, disk: DiskImage) -> None:
        """
        Compact the disk file. Diskpart runs twice: the first pass releases
        the unused blocks, the second shrinks the metadata that remains.
        """
        self._trace(self.COMPACT)
        self.can_compact(disk)

        properties = CompactProperties(file=str(disk.file))
        for number in (1, 2):
            self._trace(self.COMPACT, f"Compacting the disk (pass {number} of 2)")
            self._check(self.COMPACT, self.invoker.run(ScriptTask.COMPACT, properties))

    def abort(self, disk: DiskImage) -> None:
        """Unconditional detach after a failure. Never raises."""
        try:
            result = self.invoker.run(ScriptTask.DETACH, DetachProperties(file=str(disk.file)))
            if result.failed:
                raise RollbackError(self.DETACH, "Rollback detach failed", result.output)
        except RollbackError as e:
            logger.warning("Rollback failed", disk_file=str(disk.file), output=e.output)
            self.notifier.publish(Severity.WARNING, e.context, e.message)
        except Exception as e:
            logger.warning("Rollback failed", disk_file=str(disk.file), error=str(e))
            self.notifier.publish(Severity.WARNING, self.DETACH, f"Rollback detach failed: {e}")
