"""Tests for card/artifacts.py - Buildroot output discovery."""

import hashlib

import pytest

from bake_filling.card.artifacts import (
    ArtifactsNotFoundError,
    compute_file_hash,
    locate_artifacts,
)


def _make_images(images_dir, *, firmware=True):
    images_dir.mkdir(parents=True)
    (images_dir / "zImage").write_bytes(b"kernel")
    (images_dir / "rootfs.tar").write_bytes(b"archive")
    if firmware:
        fw = images_dir / "rpi-firmware"
        fw.mkdir()
        (fw / "start.elf").write_bytes(b"start")
        (fw / "bootcode.bin").write_bytes(b"boot")
        (fw / "overlays").mkdir()
        (fw / "overlays" / "foo.dtbo").write_bytes(b"dtbo")


class TestLocateArtifacts:
    """Tests for locate_artifacts function."""

    def test_images_in_build_dir(self, tmp_path):
        """images/ directly below the build directory is found."""
        _make_images(tmp_path / "images")

        artifacts = locate_artifacts(tmp_path)

        assert artifacts.prefix == ""
        assert artifacts.images_dir == tmp_path / "images"
        assert artifacts.kernel == tmp_path / "images" / "zImage"
        assert artifacts.rootfs_archive == tmp_path / "images" / "rootfs.tar"
        assert artifacts.firmware_dir == tmp_path / "images" / "rpi-firmware"

    def test_images_in_output_dir(self, tmp_path):
        """output/images/ is used from the Buildroot home directory."""
        _make_images(tmp_path / "output" / "images")

        artifacts = locate_artifacts(tmp_path)

        assert artifacts.prefix == "output/"
        assert artifacts.images_dir == tmp_path / "output" / "images"

    def test_first_prefix_wins(self, tmp_path):
        """images/ is preferred over output/images/."""
        _make_images(tmp_path / "images")
        _make_images(tmp_path / "output" / "images")

        assert locate_artifacts(tmp_path).prefix == ""

    def test_incomplete_first_location_skipped(self, tmp_path):
        """A location missing the archive does not count."""
        (tmp_path / "images").mkdir()
        (tmp_path / "images" / "zImage").write_bytes(b"kernel")
        _make_images(tmp_path / "output" / "images")

        assert locate_artifacts(tmp_path).prefix == "output/"

    def test_firmware_files_sorted(self, tmp_path):
        """Firmware entries are listed by name, directories included."""
        _make_images(tmp_path / "images")

        artifacts = locate_artifacts(tmp_path)

        assert [p.name for p in artifacts.firmware_files] == [
            "bootcode.bin",
            "overlays",
            "start.elf",
        ]

    def test_missing_firmware_is_not_fatal(self, tmp_path, caplog):
        """Without rpi-firmware/ only the kernel goes to the boot partition."""
        _make_images(tmp_path / "images", firmware=False)

        artifacts = locate_artifacts(tmp_path)

        assert artifacts.firmware_files == []
        assert "rpi-firmware" in caplog.text

    def test_nothing_found(self, tmp_path):
        """No complete location raises ArtifactsNotFoundError."""
        with pytest.raises(ArtifactsNotFoundError) as exc_info:
            locate_artifacts(tmp_path)

        err = exc_info.value
        assert err.error_code == "ARTIFACTS_NOT_FOUND"
        assert "Didn't find zImage and/or rootfs.tar" in err.message
        assert "ABORT" in err.message
        assert err.build_dir == tmp_path

    def test_kernel_only(self, tmp_path):
        """Kernel without archive is not enough."""
        (tmp_path / "images").mkdir()
        (tmp_path / "images" / "zImage").write_bytes(b"kernel")

        with pytest.raises(ArtifactsNotFoundError):
            locate_artifacts(tmp_path)


class TestComputeFileHash:
    """Tests for compute_file_hash function."""

    def test_sha256(self, tmp_path):
        """Hash matches hashlib over the whole file."""
        path = tmp_path / "zImage"
        data = b"x" * 5000
        path.write_bytes(data)

        assert compute_file_hash(path, block_size=1024) == hashlib.sha256(data).hexdigest()

    def test_empty_file(self, tmp_path):
        """Empty file hashes to the empty digest."""
        path = tmp_path / "empty"
        path.write_bytes(b"")

        assert compute_file_hash(path) == hashlib.sha256(b"").hexdigest()
