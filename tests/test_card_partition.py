"""Tests for card/partition.py - wiping, partitioning and formatting."""

from unittest.mock import call, patch

import pytest

from bake_filling.card.commands import CommandError
from bake_filling.card.partition import (
    CardLayout,
    build_fdisk_script,
    format_partitions,
    partition_device,
    zero_device,
)
from bake_filling.card.tools import ToolPaths

TOOLS = ToolPaths(
    dd="/bin/dd",
    fdisk="/sbin/fdisk",
    mkfs_vfat="/sbin/mkfs.vfat",
    mkfs_ext4="/sbin/mkfs.ext4",
    tar="/bin/tar",
    mount="/bin/mount",
    umount="/bin/umount",
)


class TestBuildFdiskScript:
    """Tests for build_fdisk_script function."""

    def test_default_layout(self):
        """Keystrokes for a 60M boot partition and a rootfs partition."""
        assert build_fdisk_script("+60M") == (
            "o\nn\np\n1\n\n+60M\nt\nc\nn\np\n2\n\n\na\n1\nw\n"
        )

    def test_custom_boot_size(self):
        """The boot size is the only variable keystroke."""
        script = build_fdisk_script("+256M")

        assert "\n+256M\n" in script
        assert "+60M" not in script

    def test_writes_last(self):
        """The table is only written after both partitions exist."""
        lines = build_fdisk_script("+60M").splitlines()

        assert lines[0] == "o"
        assert lines[-1] == "w"
        assert lines.count("n") == 2


class TestCardLayout:
    """Tests for CardLayout dataclass."""

    def test_defaults(self):
        """Defaults match the standard Raspberry Pi card."""
        layout = CardLayout()

        assert layout.boot_size == "+60M"
        assert layout.boot_label == "boot"
        assert layout.rootfs_label == "rootfs"
        assert layout.wipe_mib == 10


class TestZeroDevice:
    """Tests for zero_device function."""

    def test_runs_dd(self):
        """dd zeroes the first MiBs of the device, then buffers are synced."""
        with patch("bake_filling.card.partition.run_command") as mock_run, patch(
            "bake_filling.card.partition.sync"
        ) as mock_sync:
            zero_device("/dev/sdb", TOOLS, tool_path="/usr/bin")

        mock_run.assert_called_once_with(
            ["/bin/dd", "if=/dev/zero", "of=/dev/sdb", "bs=1M", "count=10"],
            tool_path="/usr/bin",
        )
        mock_sync.assert_called_once()

    def test_wipe_size(self):
        """The zeroed size is configurable."""
        with patch("bake_filling.card.partition.run_command") as mock_run, patch(
            "bake_filling.card.partition.sync"
        ):
            zero_device("/dev/sdb", TOOLS, wipe_mib=4)

        assert "count=4" in mock_run.call_args.args[0]

    def test_dd_failure_propagates(self):
        """A failing dd raises CommandError and skips sync."""
        with patch(
            "bake_filling.card.partition.run_command",
            side_effect=CommandError(["dd"], 1, "No space left"),
        ), patch("bake_filling.card.partition.sync") as mock_sync:
            with pytest.raises(CommandError):
                zero_device("/dev/sdb", TOOLS)

        mock_sync.assert_not_called()


class TestPartitionDevice:
    """Tests for partition_device function."""

    def test_feeds_fdisk(self):
        """fdisk gets the keystrokes on stdin."""
        with patch("bake_filling.card.partition.run_command") as mock_run, patch(
            "bake_filling.card.partition.sync"
        ), patch("bake_filling.card.partition.time.sleep") as mock_sleep:
            boot, rootfs = partition_device(
                "/dev/sdb", TOOLS, boot_size="+100M", settle_seconds=1.0
            )

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == ["/sbin/fdisk", "/dev/sdb"]
        assert mock_run.call_args.kwargs["input_text"] == build_fdisk_script("+100M")
        mock_sleep.assert_called_once_with(1.0)
        assert (boot, rootfs) == ("/dev/sdb1", "/dev/sdb2")

    def test_mmc_partition_names(self):
        """mmcblk devices get p-separated partition names."""
        with patch("bake_filling.card.partition.run_command"), patch(
            "bake_filling.card.partition.sync"
        ):
            result = partition_device("/dev/mmcblk0", TOOLS, settle_seconds=0)

        assert result == ("/dev/mmcblk0p1", "/dev/mmcblk0p2")

    def test_no_settle_delay(self):
        """A zero settle delay does not sleep."""
        with patch("bake_filling.card.partition.run_command"), patch(
            "bake_filling.card.partition.sync"
        ), patch("bake_filling.card.partition.time.sleep") as mock_sleep:
            partition_device("/dev/sdb", TOOLS, settle_seconds=0)

        mock_sleep.assert_not_called()


class TestFormatPartitions:
    """Tests for format_partitions function."""

    def test_mkfs_calls(self):
        """Boot gets FAT32, rootfs gets ext4, both labelled."""
        with patch("bake_filling.card.partition.run_command") as mock_run, patch(
            "bake_filling.card.partition.sync"
        ) as mock_sync:
            format_partitions("/dev/sdb1", "/dev/sdb2", TOOLS, tool_path="/sbin")

        assert mock_run.call_args_list == [
            call(
                ["/sbin/mkfs.vfat", "-F", "32", "-n", "boot", "-I", "/dev/sdb1"],
                tool_path="/sbin",
            ),
            call(
                ["/sbin/mkfs.ext4", "-F", "-L", "rootfs", "/dev/sdb2"],
                tool_path="/sbin",
            ),
        ]
        mock_sync.assert_called_once()

    def test_custom_labels(self):
        """Labels come from the arguments."""
        with patch("bake_filling.card.partition.run_command") as mock_run, patch(
            "bake_filling.card.partition.sync"
        ):
            format_partitions(
                "/dev/sdb1",
                "/dev/sdb2",
                TOOLS,
                boot_label="BOOT",
                rootfs_label="root",
            )

        vfat_argv = mock_run.call_args_list[0].args[0]
        ext4_argv = mock_run.call_args_list[1].args[0]
        assert vfat_argv[vfat_argv.index("-n") + 1] == "BOOT"
        assert ext4_argv[ext4_argv.index("-L") + 1] == "root"

    def test_vfat_failure_stops(self):
        """ext4 is not formatted when FAT32 formatting fails."""
        with patch(
            "bake_filling.card.partition.run_command",
            side_effect=CommandError(["mkfs.vfat"], 1),
        ) as mock_run, patch("bake_filling.card.partition.sync"):
            with pytest.raises(CommandError):
                format_partitions("/dev/sdb1", "/dev/sdb2", TOOLS)

        assert mock_run.call_count == 1
