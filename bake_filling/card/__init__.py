"""SD card baking module.

This module handles:
- Device validation (whole block devices only, never the system disk)
- Lookup of the external tools and of the Buildroot output
- Wiping, partitioning and formatting the card
- Populating the boot and rootfs partitions through scoped mounts
- Flash history records

Every destructive step is delegated to a system utility (dd, fdisk,
mkfs.vfat, mkfs.ext4, tar, mount, umount).
"""

from bake_filling.card.artifacts import (
    ArtifactsNotFoundError,
    BuildArtifacts,
    locate_artifacts,
)
from bake_filling.card.commands import CommandError, CommandNotFoundError, run_command
from bake_filling.card.device import (
    DeviceInfo,
    DeviceNotFoundError,
    DeviceValidationError,
    NotBlockDeviceError,
    PartitionDeviceError,
    SystemDeviceError,
    validate_device,
)
from bake_filling.card.models import FlashRecord
from bake_filling.card.mount import MountError
from bake_filling.card.service import (
    FlashAbortedError,
    FlashPlan,
    FlashResult,
    flash_card,
    get_flash_records,
    is_confirmed,
    plan_flash,
)
from bake_filling.card.tools import MissingToolError, ToolPaths, locate_tools

__all__ = [
    # Models
    "FlashRecord",
    # Device validation
    "DeviceInfo",
    "DeviceNotFoundError",
    "DeviceValidationError",
    "NotBlockDeviceError",
    "PartitionDeviceError",
    "SystemDeviceError",
    "validate_device",
    # Tools and artifacts
    "ArtifactsNotFoundError",
    "BuildArtifacts",
    "MissingToolError",
    "ToolPaths",
    "locate_artifacts",
    "locate_tools",
    # Commands and mounts
    "CommandError",
    "CommandNotFoundError",
    "MountError",
    "run_command",
    # Service
    "FlashAbortedError",
    "FlashPlan",
    "FlashResult",
    "flash_card",
    "get_flash_records",
    "is_confirmed",
    "plan_flash",
]
