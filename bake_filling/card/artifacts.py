"""Discovery of Buildroot output to put on the card.

A Buildroot tree keeps its images either in ``images/`` (when run from the
output directory) or in ``output/images/`` (when run from the Buildroot
home directory). The first location holding both the kernel and the
root filesystem archive wins.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

from bake_filling.errors import BakeFillingError

logger = logging.getLogger(__name__)

KERNEL_NAME = "zImage"
ROOTFS_ARCHIVE_NAME = "rootfs.tar"
FIRMWARE_DIR_NAME = "rpi-firmware"

# Searched in order
OUTPUT_PREFIXES = ("", "output/")


class ArtifactsNotFoundError(BakeFillingError):
    """Neither known location holds a complete set of images."""

    def __init__(self, build_dir: Path) -> None:
        searched = ", ".join(f"{p}images/" for p in OUTPUT_PREFIXES)
        super().__init__(
            f"Didn't find {KERNEL_NAME} and/or {ROOTFS_ARCHIVE_NAME} in {build_dir} "
            f"(searched {searched})! ABORT.",
            error_code="ARTIFACTS_NOT_FOUND",
        )
        self.build_dir = build_dir


@dataclass
class BuildArtifacts:
    """Located build output.

    Attributes:
        prefix: Output prefix the images were found under ('' or 'output/').
        images_dir: Directory holding the images.
        kernel: Kernel image copied to the boot partition.
        rootfs_archive: Tarball extracted onto the rootfs partition.
        firmware_dir: Raspberry Pi firmware directory.
        firmware_files: Entries of firmware_dir, sorted by name.
    """

    prefix: str
    images_dir: Path
    kernel: Path
    rootfs_archive: Path
    firmware_dir: Path
    firmware_files: list[Path] = field(default_factory=list)


def compute_file_hash(file_path: str | Path, block_size: int = 1024 * 1024) -> str:
    """Compute the SHA-256 hash of a file.

    Args:
        file_path: Path to the file to hash.
        block_size: Block size for reading.

    Returns:
        Hex hash string.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(block_size)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def _is_complete(images_dir: Path) -> bool:
    return (images_dir / KERNEL_NAME).is_file() and (
        images_dir / ROOTFS_ARCHIVE_NAME
    ).is_file()


def locate_artifacts(build_dir: Path) -> BuildArtifacts:
    """Find the images under one of the known output prefixes.

    Args:
        build_dir: Buildroot directory to search from.

    Returns:
        BuildArtifacts for the first complete location.

    Raises:
        ArtifactsNotFoundError: No location holds both kernel and rootfs.
    """
    build_dir = Path(build_dir)

    for prefix in OUTPUT_PREFIXES:
        images_dir = build_dir / prefix / "images"
        if not _is_complete(images_dir):
            logger.debug("Incomplete or missing images in %s", images_dir)
            continue

        firmware_dir = images_dir / FIRMWARE_DIR_NAME
        firmware_files: list[Path] = []
        if firmware_dir.is_dir():
            firmware_files = sorted(firmware_dir.iterdir())
        else:
            logger.warning(
                "No %s directory in %s; boot partition gets the kernel only",
                FIRMWARE_DIR_NAME,
                images_dir,
            )

        logger.info("Using images from %s", images_dir)
        return BuildArtifacts(
            prefix=prefix,
            images_dir=images_dir,
            kernel=images_dir / KERNEL_NAME,
            rootfs_archive=images_dir / ROOTFS_ARCHIVE_NAME,
            firmware_dir=firmware_dir,
            firmware_files=firmware_files,
        )

    logger.error("No complete image set below %s", build_dir)
    raise ArtifactsNotFoundError(build_dir)


__all__ = [
    "FIRMWARE_DIR_NAME",
    "KERNEL_NAME",
    "OUTPUT_PREFIXES",
    "ROOTFS_ARCHIVE_NAME",
    "ArtifactsNotFoundError",
    "BuildArtifacts",
    "compute_file_hash",
    "locate_artifacts",
]
