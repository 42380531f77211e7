"""Configuration settings for bake_filling.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# PATH used to look up and run the external tools
DEFAULT_TOOL_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# fdisk size syntax: +<number><K|M|G>
_BOOT_SIZE_PATTERN = re.compile(r"^\+\d+[KMG]$")


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "bake-filling" / "history.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the BAKE_FILLING_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="BAKE_FILLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    build_dir: Path = Field(
        default_factory=Path.cwd,
        description="Buildroot directory holding images/ or output/images/",
    )
    mount_dir_name: str = Field(
        default=".mnt",
        description="Temporary mount directory created in the working directory",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL for flash history",
    )
    tool_path: str = Field(
        default=DEFAULT_TOOL_PATH,
        description="PATH used to locate and run external tools",
    )

    # Card layout
    boot_size: str = Field(
        default="+60M",
        description="Size of the FAT32 boot partition (fdisk syntax)",
    )
    wipe_mib: int = Field(
        default=10,
        ge=1,
        description="MiB zeroed at the start of the card before partitioning",
    )
    boot_label: str = Field(default="boot", description="Boot partition label")
    rootfs_label: str = Field(default="rootfs", description="Rootfs partition label")
    settle_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay after partitioning for the kernel to pick up partitions",
    )

    # Operational modes
    check_system_device: bool = Field(
        default=True,
        description="Refuse to flash the device holding the root filesystem",
    )
    record_history: bool = Field(
        default=True,
        description="Record flash operations in the history database",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    @field_validator("boot_size")
    @classmethod
    def _check_boot_size(cls, value: str) -> str:
        if not _BOOT_SIZE_PATTERN.match(value):
            raise ValueError(
                f"boot_size must look like '+60M' (+<n><K|M|G>), got {value!r}"
            )
        return value


def get_settings(**overrides: Any) -> Settings:
    """Get the application settings.

    Args:
        **overrides: Values taking precedence over env vars (CLI flags).

    Returns:
        Settings instance loaded from environment.

    Raises:
        pydantic.ValidationError: A value is invalid.
    """
    return Settings(**overrides)


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_TOOL_PATH", "Settings", "get_settings", "print_settings_json"]
