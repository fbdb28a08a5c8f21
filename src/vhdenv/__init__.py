"""
vhdenv - Portable working environments on virtual disks.

Creates, attaches, detaches and compacts a VHDX-backed environment drive,
supervises the environment's startup script and stops the programs still
running from the drive before it is released.
"""

__version__ = "1.0.0"
__author__ = "vhdenv Team"

from vhdenv.core.config import VhdEnvConfig

__all__ = ["VhdEnvConfig", "__version__"]
