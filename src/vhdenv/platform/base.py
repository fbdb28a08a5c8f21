"""
vhdenv Platform Backend Base.

Defines the OS capabilities the lifecycle needs: running hidden commands,
querying drives and volumes, and enumerating and stopping processes.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path

import psutil

from vhdenv.core.logging import get_logger
from vhdenv.core.models import ManagedProcess

logger = get_logger(__name__)


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
        error: str | None = None,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds
        self.error = error

    @property
    def success(self) -> bool:
        return self.returncode == 0 and self.error is None

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


class PlatformBackend(ABC):
    """Abstract base class for the OS operations used by the lifecycle."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Platform name (e.g., 'windows')."""

    @abstractmethod
    def is_admin(self) -> bool:
        """Check if running with admin privileges."""

    @abstractmethod
    def run_command(
        self,
        command: list[str],
        timeout: float | None = None,
    ) -> CommandResult:
        """
        Run a command hidden, without a shell, and capture both streams.
        A command that cannot be started is reported through ``error``.
        """

    # ==================== Drive Operations ====================

    def drive_path(self, drive: str) -> Path:
        """Root directory of the drive."""
        return Path(drive.rstrip("\\/") + os.sep)

    def drive_exists(self, drive: str) -> bool:
        """Whether a volume is mounted at the drive letter."""
        return self.drive_path(drive).is_dir()

    @abstractmethod
    def get_volume_label(self, drive: str) -> str | None:
        """Label of the volume mounted at the drive, None if not ready."""

    @abstractmethod
    def is_virtual_disk(self, drive: str) -> bool:
        """Whether the volume at the drive is backed by a virtual disk."""

    @abstractmethod
    def create_shortcut(
        self,
        shortcut: Path,
        target: str,
        arguments: str,
        icon: str | None = None,
    ) -> CommandResult:
        """Create a shell shortcut file."""

    # ==================== Process Operations ====================

    def list_processes(self) -> list[ManagedProcess]:
        """All live processes with their executable path, where readable."""
        processes: list[ManagedProcess] = []
        for proc in psutil.process_iter(["pid", "name", "exe"]):
            info = proc.info
            processes.append(
                ManagedProcess(
                    pid=info["pid"],
                    name=info.get("name") or "",
                    exe=info.get("exe"),
                )
            )
        return processes

    def processes_on(self, prefix: str) -> list[ManagedProcess]:
        """Live processes whose executable path starts with the prefix."""
        return [p for p in self.list_processes() if p.belongs_to(prefix)]

    def host_process_ids(self) -> set[int]:
        """This process and its ancestors. They must outlive any cleanup."""
        current = psutil.Process()
        pids = {current.pid}
        try:
            pids.update(parent.pid for parent in current.parents())
        except psutil.Error as e:
            logger.debug("Parent processes not readable", error=str(e))
        return pids

    @abstractmethod
    def close_main_window(self, pid: int) -> None:
        """Ask a process to close its main window. Does not wait."""

    @abstractmethod
    def kill_tree(self, pid: int) -> CommandResult:
        """Terminate a process together with its children."""

    def process_exists(self, pid: int) -> bool:
        return psutil.pid_exists(pid)

    def kill_process(self, pid: int) -> None:
        """Force kill. Raises psutil.NoSuchProcess when the pid is gone."""
        psutil.Process(pid).kill()
