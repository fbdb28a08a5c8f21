"""
vhdenv Platform Abstraction Layer.

Provides the platform-specific implementation of the OS operations
used by the disk lifecycle.
"""

from __future__ import annotations

import platform

from vhdenv.platform.base import CommandResult, PlatformBackend


def get_platform_backend(taskkill: str | None = None) -> PlatformBackend:
    """Get the appropriate platform backend for the current OS."""
    system = platform.system().lower()

    if system == "windows":
        from vhdenv.platform.windows import WindowsBackend

        return WindowsBackend(taskkill=taskkill)
    raise RuntimeError(f"Unsupported platform: {system}")


def get_platform_name() -> str:
    """Get the current platform name."""
    return platform.system().lower()


def is_windows() -> bool:
    """Check if running on Windows."""
    return platform.system().lower() == "windows"


__all__ = [
    "CommandResult",
    "PlatformBackend",
    "get_platform_backend",
    "get_platform_name",
    "is_windows",
]
