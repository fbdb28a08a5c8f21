"""
vhdenv data models.

Defines the disk image, the result of an external tool run, and the
processes discovered on a mounted environment drive.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vhdenv.platform.base import PlatformBackend

DRIVE_PATTERN = re.compile(r"^[A-Za-z]:$")


class DiskState(Enum):
    """Live state of a disk image, derived from the OS on every query."""

    ABSENT = auto()
    CREATED_UNATTACHED = auto()
    ATTACHED = auto()
    ATTACHED_BUSY = auto()


def normalize_drive(drive: str) -> str:
    """Normalize ``e``, ``e:`` or ``E:\\`` to ``E:``."""
    value = drive.strip().rstrip("\\/")
    if len(value) == 1:
        value += ":"
    if not DRIVE_PATTERN.match(value):
        raise ValueError(f"Invalid drive letter: {drive!r}")
    return value.upper()


@dataclass(frozen=True)
class DiskImage:
    """A virtual disk file and the drive letter it is mounted to."""

    file: Path
    drive: str

    @classmethod
    def of(cls, drive: str, disk_file: str | Path) -> DiskImage:
        return cls(file=Path(disk_file).absolute(), drive=normalize_drive(drive))

    @property
    def name(self) -> str:
        """Expected volume label, the file name without extension."""
        return self.file.stem

    @property
    def letter(self) -> str:
        return self.drive[0]

    @property
    def mount_point(self) -> str:
        return self.drive + "\\"

    def state(self, backend: PlatformBackend) -> DiskState:
        if backend.drive_exists(self.drive):
            if any(p.belongs_to(self.mount_point) for p in backend.list_processes()):
                return DiskState.ATTACHED_BUSY
            return DiskState.ATTACHED
        if self.file.exists():
            return DiskState.CREATED_UNATTACHED
        return DiskState.ABSENT


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one run of an external tool or script."""

    output: str = ""
    failed: bool = False
    message: str | None = None

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class ManagedProcess:
    """A live process, identified by pid, with its executable path."""

    pid: int
    name: str
    exe: str | None = None

    def belongs_to(self, prefix: str) -> bool:
        if not self.exe or not prefix:
            return False
        return self.exe.lower().startswith(prefix.lower())
