"""
Windows Platform Backend Implementation.

Implements the OS operations using Windows tools:
- ctypes (kernel32/user32) for volume labels and window messages
- PowerShell with Get-Partition and Get-Disk for disk information
- taskkill for process tree termination
- WScript.Shell (via PowerShell) for shortcut files
"""

from __future__ import annotations

import ctypes
import subprocess
import time
from pathlib import Path

from vhdenv.core.logging import get_logger
from vhdenv.platform.base import CommandResult, PlatformBackend
from vhdenv.platform.windows.parsers import is_virtual_disk_record, parse_powershell_json

logger = get_logger(__name__)

WM_CLOSE = 0x0010
GW_OWNER = 4


class WindowsBackend(PlatformBackend):
    """Windows implementation of the lifecycle OS operations."""

    POWERSHELL = "powershell.exe"
    TASKKILL = "taskkill.exe"

    def __init__(self, taskkill: str | None = None) -> None:
        self.taskkill = taskkill or self.TASKKILL

    @property
    def name(self) -> str:
        return "windows"

    def is_admin(self) -> bool:
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except Exception:
            return False

    def run_command(
        self,
        command: list[str],
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a system command."""
        logger.debug("Running command", command=command)
        start_time = time.time()

        try:
            # Use STARTF_USESHOWWINDOW to hide console
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
            startupinfo.wShowWindow = subprocess.SW_HIDE

            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
                startupinfo=startupinfo,
                creationflags=subprocess.CREATE_NO_WINDOW,
            )
            duration = time.time() - start_time

            if result.returncode != 0:
                logger.warning(
                    "Command failed",
                    command=command,
                    returncode=result.returncode,
                    stderr=result.stderr[:500] if result.stderr else "",
                )

            return CommandResult(
                returncode=result.returncode,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
                command=command,
                duration_seconds=duration,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr="",
                command=command,
                duration_seconds=time.time() - start_time,
                error=f"Command timed out after {timeout}s",
            )
        except OSError as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr="",
                command=command,
                duration_seconds=time.time() - start_time,
                error=str(e),
            )

    def _run_powershell(
        self,
        script: str,
        timeout: float | None = 60,
    ) -> CommandResult:
        """Run a PowerShell script."""
        cmd = [
            self.POWERSHELL,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy", "Bypass",
            "-Command", script,
        ]
        return self.run_command(cmd, timeout=timeout)

    # ==================== Drive Operations ====================

    def get_volume_label(self, drive: str) -> str | None:
        root = drive.rstrip("\\/") + "\\"
        label = ctypes.create_unicode_buffer(261)
        filesystem = ctypes.create_unicode_buffer(261)
        ok = ctypes.windll.kernel32.GetVolumeInformationW(
            ctypes.c_wchar_p(root),
            label,
            len(label),
            None,
            None,
            None,
            filesystem,
            len(filesystem),
        )
        if not ok:
            return None
        return label.value

    def is_virtual_disk(self, drive: str) -> bool:
        letter = drive.strip()[0]
        script = f"""
        Get-Partition -DriveLetter {letter} | Get-Disk |
            Select-Object BusType, Model, FriendlyName, Location | ConvertTo-Json
        """
        result = self._run_powershell(script)
        if not result.success:
            return False
        return any(is_virtual_disk_record(record) for record in parse_powershell_json(result.stdout))

    def create_shortcut(
        self,
        shortcut: Path,
        target: str,
        arguments: str,
        icon: str | None = None,
    ) -> CommandResult:
        def quote(value: str) -> str:
            return "'" + value.replace("'", "''") + "'"

        script = f"""
        $shell = New-Object -ComObject WScript.Shell
        $shortcut = $shell.CreateShortcut({quote(str(shortcut))})
        $shortcut.TargetPath = {quote(target)}
        $shortcut.Arguments = {quote(arguments)}
        $shortcut.IconLocation = {quote(icon or target)}
        $shortcut.Save()
        """
        return self._run_powershell(script)

    # ==================== Process Operations ====================

    def close_main_window(self, pid: int) -> None:
        """Post WM_CLOSE to the visible top-level windows of the process."""
        user32 = ctypes.windll.user32
        enum_proc = ctypes.WINFUNCTYPE(ctypes.c_bool, ctypes.c_void_p, ctypes.c_void_p)

        def callback(hwnd: int, _: int) -> bool:
            owner = ctypes.c_ulong()
            user32.GetWindowThreadProcessId(ctypes.c_void_p(hwnd), ctypes.byref(owner))
            if (
                owner.value == pid
                and user32.IsWindowVisible(ctypes.c_void_p(hwnd))
                and not user32.GetWindow(ctypes.c_void_p(hwnd), GW_OWNER)
            ):
                user32.PostMessageW(ctypes.c_void_p(hwnd), WM_CLOSE, 0, 0)
            return True

        user32.EnumWindows(enum_proc(callback), 0)

    def kill_tree(self, pid: int) -> CommandResult:
        return self.run_command([self.taskkill, "/t", "/pid", str(pid)])
