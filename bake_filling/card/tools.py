"""Lookup of the external tools needed to bake a card."""

import logging
import shutil
from dataclasses import dataclass

from bake_filling.config import DEFAULT_TOOL_PATH
from bake_filling.errors import BakeFillingError
from bake_filling.types import ExitCode

logger = logging.getLogger(__name__)

# Tool name -> what it is used for
REQUIRED_TOOLS: dict[str, str] = {
    "dd": "clears the start of the card before partitioning",
    "fdisk": "creates the boot and rootfs partitions",
    "mkfs.vfat": "formats the FAT32 boot partition",
    "mkfs.ext4": "formats the rootfs partition",
    "tar": "unpacks the root filesystem onto the card",
    "mount": "mounts the new partitions",
    "umount": "unmounts the card's partitions",
}


class MissingToolError(BakeFillingError):
    """One or more required tools are not installed."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            f"Missing {', '.join(missing)}",
            error_code="MISSING_TOOL",
            exit_code=ExitCode.MISSING_TOOL,
        )
        self.missing = missing


@dataclass
class ToolPaths:
    """Absolute paths of the resolved tools."""

    dd: str
    fdisk: str
    mkfs_vfat: str
    mkfs_ext4: str
    tar: str
    mount: str
    umount: str


def locate_tools(tool_path: str = DEFAULT_TOOL_PATH) -> ToolPaths:
    """Resolve every required tool on the given PATH.

    Args:
        tool_path: PATH string to search.

    Returns:
        ToolPaths with absolute paths.

    Raises:
        MissingToolError: At least one tool was not found. All missing
            tools are reported at once.
    """
    found: dict[str, str] = {}
    missing: list[str] = []

    for name, purpose in REQUIRED_TOOLS.items():
        resolved = shutil.which(name, path=tool_path)
        if resolved is None:
            logger.error("Missing %s (%s)", name, purpose)
            missing.append(name)
        else:
            logger.debug("Found %s at %s", name, resolved)
            found[name] = resolved

    if missing:
        raise MissingToolError(missing)

    return ToolPaths(
        dd=found["dd"],
        fdisk=found["fdisk"],
        mkfs_vfat=found["mkfs.vfat"],
        mkfs_ext4=found["mkfs.ext4"],
        tar=found["tar"],
        mount=found["mount"],
        umount=found["umount"],
    )


__all__ = ["REQUIRED_TOOLS", "MissingToolError", "ToolPaths", "locate_tools"]
