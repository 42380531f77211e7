"""Shared type definitions for bake_filling.

This module contains enums shared across subpackages to avoid circular
imports.
"""

from enum import Enum, IntEnum


class ExitCode(IntEnum):
    """Process exit codes of the flash command."""

    SUCCESS = 0
    FAILURE = 1
    MOUNT_FAILED = 2
    MISSING_TOOL = 3


class FlashStatus(str, Enum):
    """Status of a flash operation."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FlashStage(str, Enum):
    """Stages of a flash operation, in execution order."""

    UNMOUNT = "unmount"
    WIPE = "wipe"
    PARTITION = "partition"
    FORMAT = "format"
    POPULATE_BOOT = "populate-boot"
    POPULATE_ROOTFS = "populate-rootfs"
    CLEANUP = "cleanup"
    DONE = "done"


# Status banner shown when a stage starts
STAGE_MESSAGES: dict[FlashStage, str] = {
    FlashStage.UNMOUNT: "Unmounting existing partitions...",
    FlashStage.WIPE: "Clearing first part of SD card...",
    FlashStage.PARTITION: "Partitioning SD card...",
    FlashStage.FORMAT: "Formatting partitions...",
    FlashStage.POPULATE_BOOT: "Populating boot partition...",
    FlashStage.POPULATE_ROOTFS: "Populating rootfs partition...",
    FlashStage.CLEANUP: "Cleaning up",
    FlashStage.DONE: "You have Baked your own Raspberry Pi Filling!",
}


__all__ = [
    "STAGE_MESSAGES",
    "ExitCode",
    "FlashStage",
    "FlashStatus",
]
