"""
vhdenv Core - Lifecycle service layer.

Contains the disk lifecycle, script supervision, process termination,
configuration and logging of vhdenv.
"""

from vhdenv.core.config import VhdEnvConfig
from vhdenv.core.errors import ExitCode, LifecycleError, PreconditionError, ToolFailure
from vhdenv.core.logging import get_logger, setup_logging

__all__ = [
    "VhdEnvConfig",
    "ExitCode",
    "LifecycleError",
    "PreconditionError",
    "ToolFailure",
    "get_logger",
    "setup_logging",
]
