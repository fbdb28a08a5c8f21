"""
vhdenv CLI Module.

Provides the command-line interface for the lifecycle tasks.
"""

from vhdenv.cli.main import main, cli

__all__ = ["main", "cli"]
