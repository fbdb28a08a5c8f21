"""
vhdenv Windows Platform Backend.

Implements the lifecycle OS operations using Windows tools:
- ctypes for volume information and window messages
- PowerShell Get-Partition, Get-Disk for disk information
- taskkill for process tree termination
"""

from vhdenv.platform.windows.backend import WindowsBackend
from vhdenv.platform.windows.parsers import (
    is_virtual_disk_record,
    parse_powershell_json,
)

__all__ = [
    "WindowsBackend",
    "is_virtual_disk_record",
    "parse_powershell_json",
]
