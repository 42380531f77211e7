"""Mount handling for the card's partitions.

Mounts are scoped: a partition mounted with :func:`mounted` is unmounted
when the block exits, and :func:`mount_directory` removes the temporary
mount point it created.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from bake_filling.card.commands import CommandError, run_command, sync
from bake_filling.card.tools import ToolPaths
from bake_filling.config import DEFAULT_TOOL_PATH
from bake_filling.errors import BakeFillingError
from bake_filling.types import ExitCode

logger = logging.getLogger(__name__)


class MountError(BakeFillingError):
    """Mounting or unmounting a partition failed."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message, error_code="MOUNT_FAILED", exit_code=ExitCode.MOUNT_FAILED
        )


def is_mountpoint(folder: Path, mounts_file: Path = Path("/proc/mounts")) -> bool:
    """Check /proc/mounts for a mount on the given folder."""
    folder = folder.resolve()
    with open(mounts_file) as handle:
        for line in handle:
            words = line.split()
            if len(words) >= 2 and Path(words[1]) == folder:
                return True
    return False


def unmount_sources(
    sources: list[str],
    tools: ToolPaths,
    *,
    tool_path: str = DEFAULT_TOOL_PATH,
) -> None:
    """Force-unmount every given device node.

    Args:
        sources: Mounted device nodes (e.g., from get_mounted_sources).
        tools: Resolved tool paths.
        tool_path: PATH for the child processes.

    Raises:
        MountError: A umount call failed.
    """
    for source in sources:
        logger.info("Unmounting %s", source)
        try:
            run_command([tools.umount, "-f", source], tool_path=tool_path)
        except CommandError as e:
            raise MountError(f"Failed to unmount {source}: {e.message}") from e


def check_mount_directory(path: Path) -> None:
    """Check that a mount point can be created or reused.

    An empty, unmounted directory left behind by an interrupted run is
    fine; it is reused.

    Raises:
        MountError: The path is mounted, not a directory, or not empty.
    """
    if not path.exists():
        return
    if is_mountpoint(path):
        raise MountError(f"{path} is still mounted from a previous run")
    if not path.is_dir():
        raise MountError(f"Mount directory {path} exists and is not a directory")
    if any(path.iterdir()):
        raise MountError(f"Mount directory {path} is not empty, remove it first")


@contextmanager
def mount_directory(path: Path) -> Generator[Path, None, None]:
    """Provide a temporary mount point and remove it afterwards.

    An empty leftover directory is reused. On failure the directory is
    only removed when empty, so that nothing left behind by a stuck
    mount is deleted.

    Yields:
        The mount directory.

    Raises:
        MountError: The path cannot be used as a mount point.
    """
    check_mount_directory(path)
    if path.exists():
        logger.warning("Reusing leftover mount directory %s", path)
    else:
        path.mkdir()
        logger.debug("Created mount directory %s", path)
    try:
        yield path
    except BaseException:
        if path.is_dir() and not any(path.iterdir()):
            path.rmdir()
        raise
    path.rmdir()
    logger.debug("Removed mount directory %s", path)


@contextmanager
def mounted(
    partition: str,
    mount_point: Path,
    tools: ToolPaths,
    *,
    tool_path: str = DEFAULT_TOOL_PATH,
) -> Generator[Path, None, None]:
    """Mount a partition for the duration of the block.

    Buffers are synced before unmounting.

    Raises:
        MountError: The partition could not be mounted or unmounted.
    """
    try:
        run_command([tools.mount, partition, str(mount_point)], tool_path=tool_path)
    except CommandError as e:
        raise MountError(
            f"Failed to mount {partition} on {mount_point}: {e.message}"
        ) from e

    try:
        yield mount_point
    finally:
        sync()
        try:
            run_command([tools.umount, str(mount_point)], tool_path=tool_path)
        except CommandError as e:
            raise MountError(f"Failed to unmount {mount_point}: {e.message}") from e
        sync()


__all__ = [
    "MountError",
    "check_mount_directory",
    "is_mountpoint",
    "mount_directory",
    "mounted",
    "unmount_sources",
]
