"""
vhdenv configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = False
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".vhdenv" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class DiskConfig(BaseModel):
    """Parameters used when a new virtual disk is created."""

    type: Literal["expandable", "fixed"] = "expandable"
    size_mb: int = Field(default=128000, ge=8, le=64 * 1024 * 1024)
    style: Literal["GPT", "MBR"] = "GPT"
    format: Literal["NTFS", "exFAT", "FAT32", "ReFS"] = "NTFS"
    diskpart: str = "diskpart.exe"
    taskkill: str = "taskkill.exe"
    script_directory: Path | None = None


class SupervisorConfig(BaseModel):
    """Freeze detection for the environment startup/shutdown script."""

    poll_interval_seconds: float = Field(default=0.025, gt=0, le=5)
    idle_timeout_seconds: float = Field(default=30.0, gt=0, le=3600)
    # Programs started by the script inherit its pipes; their output is not waited for
    output_grace_seconds: float = Field(default=0.5, ge=0, le=30)
    startup_script: str = "Startup.cmd"
    attach_argument: str = "startup"
    detach_argument: str = "exit"


class ReaperConfig(BaseModel):
    """Escalating termination of processes still running from the drive."""

    settle_seconds: float = Field(default=5.0, ge=0, le=300)
    force_attempts: int = Field(default=3, ge=1, le=10)
    excluded_process_names: list[str] = Field(default_factory=list)


class EnvironmentConfig(BaseModel):
    """Identity and settings of the virtual environment."""

    name: str = "platform"
    home: Path = Field(default_factory=Path.cwd)
    disk_file: Path | None = None
    values: dict[str, str] = Field(default_factory=dict)
    customs: list[str] = Field(default_factory=list)

    @field_validator("home", mode="before")
    @classmethod
    def expand_home(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("disk_file", mode="before")
    @classmethod
    def expand_disk_file(cls, v: str | Path | None) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    def resolve_disk_file(self) -> Path:
        """Disk file as configured, or <home>/<name>.vhdx."""
        if self.disk_file is not None:
            return self.disk_file
        return self.home / f"{self.name}.vhdx"


class VhdEnvConfig(BaseModel):
    """Main vhdenv configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    disk: DiskConfig = Field(default_factory=DiskConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> VhdEnvConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".vhdenv" / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path.home() / ".vhdenv" / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        if self.logging.file_enabled:
            self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        if self.disk.script_directory:
            self.disk.script_directory.mkdir(parents=True, exist_ok=True)


def get_default_config() -> VhdEnvConfig:
    """Get the default configuration."""
    return VhdEnvConfig()


def settings_file_for(disk_file: Path) -> Path:
    """Settings file kept beside a disk file: <stem>.json."""
    return disk_file.with_name(f"{disk_file.stem}.json")


def load_config(config_path: Path | None = None, disk_file: Path | None = None) -> VhdEnvConfig:
    """
    Load or create configuration.

    Without an explicit file, the settings file beside the disk wins over the
    home configuration. The disk is the given one, or the one the home
    configuration names.
    """
    config = VhdEnvConfig.load(config_path)
    if config_path is None:
        disk = Path(disk_file).expanduser().absolute() if disk_file else config.environment.resolve_disk_file()
        settings_file = settings_file_for(disk)
        if settings_file.exists():
            config = VhdEnvConfig.load(settings_file)
    config.ensure_directories()
    return config
