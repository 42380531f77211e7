"""Device validation for SD card flashing.

This module handles all device-related checks before the card is touched:
- Root privilege check
- Validate device path exists and is a block device
- Ensure whole-device only (reject partitions like /dev/sda1)
- Refuse the device holding the system root filesystem
- Discover partitions of the device that are currently mounted
- Derive partition device names (/dev/sdb1 vs /dev/mmcblk0p1)
"""

import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path

from bake_filling.errors import BakeFillingError, PrivilegeError

logger = logging.getLogger(__name__)

PROC_MOUNTS = Path("/proc/mounts")


@dataclass
class DeviceInfo:
    """Information about a validated block device.

    Attributes:
        path: Absolute path to the device (e.g., '/dev/sdb').
        mounted_sources: Mounted device nodes belonging to this device.
        size_bytes: Size of the device in bytes (if available).
    """

    path: str
    mounted_sources: list[str] = field(default_factory=list)
    size_bytes: int | None = None

    @property
    def is_mounted(self) -> bool:
        """Whether any part of the device is mounted."""
        return len(self.mounted_sources) > 0


class DeviceValidationError(BakeFillingError):
    """Base exception for device validation errors."""


class DeviceNotFoundError(DeviceValidationError):
    """Device path does not exist."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"{device_path} is not a block device! (no such file)",
            error_code="DEVICE_NOT_FOUND",
        )
        self.device_path = device_path


class NotBlockDeviceError(DeviceValidationError):
    """Path exists but is not a block device."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"{device_path} is not a block device!", error_code="NOT_BLOCK_DEVICE"
        )
        self.device_path = device_path


class PartitionDeviceError(DeviceValidationError):
    """Device appears to be a partition, not a whole device."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"{device_path} appears to be a partition. "
            "Pass the whole SD card device (e.g., /dev/sdb, /dev/mmcblk0).",
            error_code="PARTITION_NOT_ALLOWED",
        )
        self.device_path = device_path


class SystemDeviceError(DeviceValidationError):
    """Device appears to be the system root device."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"{device_path} holds the running system's root filesystem. "
            "Refusing to flash it.",
            error_code="SYSTEM_DEVICE",
        )
        self.device_path = device_path


# /dev/sdX1, /dev/hdX1, /dev/vdX1
_PARTITION_PATTERN_SD = re.compile(r"^/dev/[shv]d[a-z]+(\d+)$")
# /dev/nvme0n1p1
_PARTITION_PATTERN_NVME = re.compile(r"^/dev/nvme\d+n\d+p(\d+)$")
# /dev/mmcblk0p1
_PARTITION_PATTERN_MMC = re.compile(r"^/dev/mmcblk\d+p(\d+)$")
# /dev/loop0p1
_PARTITION_PATTERN_LOOP = re.compile(r"^/dev/loop\d+p(\d+)$")

_PARTITION_PATTERNS = [
    _PARTITION_PATTERN_SD,
    _PARTITION_PATTERN_NVME,
    _PARTITION_PATTERN_MMC,
    _PARTITION_PATTERN_LOOP,
]


def require_root(program: str = "bake-filling") -> None:
    """Ensure the process runs as root.

    Raises:
        PrivilegeError: Effective user is not root.
    """
    if os.geteuid() != 0:
        logger.error("Not running as root (euid=%d)", os.geteuid())
        raise PrivilegeError(program)


def is_partition_path(device_path: str) -> bool:
    """Check if a device path looks like a partition.

    Args:
        device_path: Path to the device.

    Returns:
        True if the path appears to be a partition, False otherwise.
    """
    return any(pattern.match(device_path) for pattern in _PARTITION_PATTERNS)


def partition_path(device_path: str, number: int) -> str:
    """Return the device node of a partition on a whole device.

    Devices whose name ends in a digit get a 'p' separator.

    Args:
        device_path: Whole device path (e.g., '/dev/sdb', '/dev/mmcblk0').
        number: Partition number (1-based).

    Returns:
        Partition path (e.g., '/dev/sdb1', '/dev/mmcblk0p1').
    """
    if device_path[-1:].isdigit():
        return f"{device_path}p{number}"
    return f"{device_path}{number}"


def is_block_device(device_path: str) -> bool:
    """Check if a path is a block device.

    Args:
        device_path: Path to check.

    Returns:
        True if the path is a block device, False otherwise.
    """
    try:
        mode = os.stat(device_path).st_mode
        return stat.S_ISBLK(mode)
    except OSError:
        return False


def _belongs_to(mounted_name: str, device_name: str) -> bool:
    """Whether a mounted device name is the device or one of its partitions."""
    if mounted_name == device_name:
        return True
    if not mounted_name.startswith(device_name):
        return False
    rest = mounted_name[len(device_name) :]
    # loop1 must not claim loop10
    if device_name[-1].isdigit():
        return rest.startswith("p") and rest[1:].isdigit()
    return rest.isdigit()


def get_mounted_sources(device_path: str, mounts_file: Path = PROC_MOUNTS) -> list[str]:
    """Get mounted device nodes that belong to a device.

    Parses /proc/mounts for the device itself and its partitions.

    Args:
        device_path: Path to the whole device (e.g., '/dev/sdb').
        mounts_file: Mount table to read; can be changed for tests.

    Returns:
        Mounted source paths in mount table order, without duplicates.
    """
    sources: list[str] = []
    device_name = Path(device_path).name

    try:
        with open(mounts_file) as f:
            for line in f:
                parts = line.split()
                if len(parts) < 2 or not parts[0].startswith("/dev/"):
                    continue
                source = parts[0]
                if _belongs_to(Path(source).name, device_name) and source not in sources:
                    sources.append(source)
    except OSError:
        logger.warning("Could not read %s, skipping mount check", mounts_file)

    return sources


def _partition_to_whole_device(partition: str) -> str:
    """Convert a partition path to its whole device path.

    Args:
        partition: Path to a partition (e.g., '/dev/sda1').

    Returns:
        Path to the whole device (e.g., '/dev/sda').
    """
    match = _PARTITION_PATTERN_SD.match(partition)
    if match:
        return partition[: -len(match.group(1))]

    for pattern in (_PARTITION_PATTERN_NVME, _PARTITION_PATTERN_MMC, _PARTITION_PATTERN_LOOP):
        if pattern.match(partition):
            return partition[: partition.rfind("p")]

    return partition


def get_root_device(mounts_file: Path = PROC_MOUNTS) -> str | None:
    """Get the whole device that holds the root filesystem.

    Returns:
        Path to the root device, or None if unknown.
    """
    try:
        with open(mounts_file) as f:
            for line in f:
                parts = line.split()
                if len(parts) >= 2 and parts[1] == "/":
                    return _partition_to_whole_device(parts[0])
    except OSError:
        logger.warning("Could not read %s to determine root device", mounts_file)

    return None


def get_device_size(device_path: str) -> int | None:
    """Get the size of a block device in bytes from sysfs.

    Args:
        device_path: Path to the device.

    Returns:
        Size in bytes, or None if unknown.
    """
    size_path = Path(f"/sys/class/block/{Path(device_path).name}/size")

    try:
        if size_path.exists():
            # Size is in 512-byte sectors
            return int(size_path.read_text().strip()) * 512
    except (OSError, ValueError) as e:
        logger.warning("Could not read device size for %s: %s", device_path, e)

    return None


def validate_device(
    device_path: str,
    *,
    check_system_device: bool = True,
) -> DeviceInfo:
    """Validate a device path before baking a card.

    1. Check that the path exists
    2. Check that it is a block device
    3. Check that it is a whole device (not a partition)
    4. Optionally check that it is not the system root device

    Mounted partitions are reported, not refused: they are unmounted
    once the user has confirmed.

    Args:
        device_path: Path to the device to validate.
        check_system_device: Whether to refuse the system root device.

    Returns:
        DeviceInfo with validation results.

    Raises:
        DeviceNotFoundError: Device path does not exist.
        NotBlockDeviceError: Path is not a block device.
        PartitionDeviceError: Device is a partition, not whole device.
        SystemDeviceError: Device is the system root device.
    """
    device_path = os.path.abspath(device_path)
    logger.debug("Validating device: %s", device_path)

    if not os.path.exists(device_path):
        logger.error("Device not found: %s", device_path)
        raise DeviceNotFoundError(device_path)

    if not is_block_device(device_path):
        logger.error("Not a block device: %s", device_path)
        raise NotBlockDeviceError(device_path)

    if is_partition_path(device_path):
        logger.error("Device is a partition: %s", device_path)
        raise PartitionDeviceError(device_path)

    if check_system_device:
        root_device = get_root_device()
        if root_device and device_path == root_device:
            logger.error("Device is system root: %s", device_path)
            raise SystemDeviceError(device_path)

    mounted_sources = get_mounted_sources(device_path)
    if mounted_sources:
        logger.warning(
            "Device %s has mounted partitions: %s", device_path, mounted_sources
        )

    info = DeviceInfo(
        path=device_path,
        mounted_sources=mounted_sources,
        size_bytes=get_device_size(device_path),
    )
    logger.info(
        "Device validated: %s (size=%s, mounted=%s)",
        info.path,
        info.size_bytes,
        info.is_mounted,
    )
    return info


__all__ = [
    "DeviceInfo",
    "DeviceNotFoundError",
    "DeviceValidationError",
    "NotBlockDeviceError",
    "PartitionDeviceError",
    "SystemDeviceError",
    "get_device_size",
    "get_mounted_sources",
    "get_root_device",
    "is_block_device",
    "is_partition_path",
    "partition_path",
    "require_root",
    "validate_device",
]
