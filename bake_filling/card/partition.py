"""Partitioning and formatting of the SD card.

The card gets a DOS partition table with two primary partitions:
1. a W95 FAT32 (LBA) boot partition the Raspberry Pi firmware reads at
   power-on, and
2. a Linux partition for the root filesystem, taking the rest of the card.

Partitioning is done by feeding fdisk its interactive keystrokes.
"""

import logging
import time
from dataclasses import dataclass

from bake_filling.card.commands import run_command, sync
from bake_filling.card.device import partition_path
from bake_filling.card.tools import ToolPaths
from bake_filling.config import DEFAULT_TOOL_PATH

logger = logging.getLogger(__name__)

# fdisk type code for W95 FAT32 (LBA)
FAT32_LBA_TYPE = "c"


@dataclass
class CardLayout:
    """Partition layout written to the card.

    Attributes:
        boot_size: Size of the boot partition in fdisk syntax (e.g., '+60M').
        boot_label: Volume label of the FAT32 partition.
        rootfs_label: Volume label of the ext4 partition.
        wipe_mib: MiB zeroed at the start of the card.
    """

    boot_size: str = "+60M"
    boot_label: str = "boot"
    rootfs_label: str = "rootfs"
    wipe_mib: int = 10


def build_fdisk_script(boot_size: str) -> str:
    """Return the keystrokes that make fdisk create the card layout.

    Empty lines accept fdisk's default for the prompt.

    Args:
        boot_size: Size of partition 1 (e.g., '+60M').

    Returns:
        Newline-terminated fdisk input.
    """
    keystrokes = [
        "o",  # new DOS partition table
        "n",  # partition 1: boot
        "p",
        "1",
        "",
        boot_size,
        "t",
        FAT32_LBA_TYPE,
        "n",  # partition 2: rootfs, rest of the card
        "p",
        "2",
        "",
        "",
        "a",  # bootable flag
        "1",
        "w",
    ]
    return "\n".join(keystrokes) + "\n"


def zero_device(
    device_path: str,
    tools: ToolPaths,
    *,
    wipe_mib: int = 10,
    tool_path: str = DEFAULT_TOOL_PATH,
) -> None:
    """Overwrite the start of the device with zeros.

    Only the start needs clearing since a new partition table follows.

    Raises:
        CommandError: dd failed.
    """
    logger.info("Zeroing first %d MiB of %s", wipe_mib, device_path)
    run_command(
        [tools.dd, "if=/dev/zero", f"of={device_path}", "bs=1M", f"count={wipe_mib}"],
        tool_path=tool_path,
    )
    sync()


def partition_device(
    device_path: str,
    tools: ToolPaths,
    *,
    boot_size: str = "+60M",
    settle_seconds: float = 1.0,
    tool_path: str = DEFAULT_TOOL_PATH,
) -> tuple[str, str]:
    """Create the boot and rootfs partitions.

    Args:
        device_path: Whole device to partition.
        tools: Resolved tool paths.
        boot_size: Size of the boot partition.
        settle_seconds: Delay for the kernel to create the partition nodes.
        tool_path: PATH for the child process.

    Returns:
        Tuple of (boot partition path, rootfs partition path).

    Raises:
        CommandError: fdisk failed.
    """
    logger.info("Partitioning %s (boot=%s)", device_path, boot_size)
    run_command(
        [tools.fdisk, device_path],
        input_text=build_fdisk_script(boot_size),
        tool_path=tool_path,
    )
    sync()
    if settle_seconds:
        time.sleep(settle_seconds)

    return partition_path(device_path, 1), partition_path(device_path, 2)


def format_partitions(
    boot_partition: str,
    rootfs_partition: str,
    tools: ToolPaths,
    *,
    boot_label: str = "boot",
    rootfs_label: str = "rootfs",
    tool_path: str = DEFAULT_TOOL_PATH,
) -> None:
    """Format the boot partition as FAT32 and the rootfs partition as ext4.

    Raises:
        CommandError: A mkfs call failed.
    """
    logger.info("Formatting %s as FAT32 (%s)", boot_partition, boot_label)
    # -I: the partition table was just created, don't refuse the device
    run_command(
        [tools.mkfs_vfat, "-F", "32", "-n", boot_label, "-I", boot_partition],
        tool_path=tool_path,
    )

    logger.info("Formatting %s as ext4 (%s)", rootfs_partition, rootfs_label)
    run_command(
        [tools.mkfs_ext4, "-F", "-L", rootfs_label, rootfs_partition],
        tool_path=tool_path,
    )
    sync()


__all__ = [
    "FAT32_LBA_TYPE",
    "CardLayout",
    "build_fdisk_script",
    "format_partitions",
    "partition_device",
    "zero_device",
]
