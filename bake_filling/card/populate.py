"""Copying the build output onto mounted partitions."""

import logging
import shutil
from pathlib import Path

from bake_filling.card.artifacts import BuildArtifacts
from bake_filling.card.commands import run_command
from bake_filling.card.tools import ToolPaths
from bake_filling.config import DEFAULT_TOOL_PATH

logger = logging.getLogger(__name__)


def populate_boot(artifacts: BuildArtifacts, mount_point: Path) -> list[Path]:
    """Copy the firmware files and the kernel onto the boot partition.

    Firmware subdirectories (e.g. overlays/) are copied recursively.

    Args:
        artifacts: Located build output.
        mount_point: Where the boot partition is mounted.

    Returns:
        Paths created at the top level of the mount point.
    """
    copied: list[Path] = []

    for entry in artifacts.firmware_files:
        target = mount_point / entry.name
        if entry.is_dir():
            shutil.copytree(entry, target)
        else:
            shutil.copy(entry, target)
        logger.debug("Copied %s", entry.name)
        copied.append(target)

    kernel_target = mount_point / artifacts.kernel.name
    shutil.copy(artifacts.kernel, kernel_target)
    copied.append(kernel_target)

    logger.info(
        "Copied %d firmware entries and %s to %s",
        len(artifacts.firmware_files),
        artifacts.kernel.name,
        mount_point,
    )
    return copied


def populate_rootfs(
    artifacts: BuildArtifacts,
    mount_point: Path,
    tools: ToolPaths,
    *,
    tool_path: str = DEFAULT_TOOL_PATH,
) -> None:
    """Extract the root filesystem archive onto the rootfs partition.

    tar keeps permissions, ownership and device nodes (-p, run as root)
    and keeps the archive's entry order (-s).

    Raises:
        CommandError: tar failed.
    """
    logger.info("Extracting %s to %s", artifacts.rootfs_archive, mount_point)
    run_command(
        [tools.tar, "-xpsf", str(artifacts.rootfs_archive), "-C", str(mount_point)],
        tool_path=tool_path,
    )


__all__ = ["populate_boot", "populate_rootfs"]
