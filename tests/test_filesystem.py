"""Tests for partition and filesystem growth."""

import pytest

from conftest import FakeCommandRunner, ok
from qcow2ova.domain import FSType
from qcow2ova.storage.exceptions import MountError, ToolError, UnsupportedFormatError
from qcow2ova.storage.filesystem import (
    detect_fs_type,
    grow_filesystem,
    grow_partition,
    root_mount_options,
)


class TestGrowPartition:
    def test_runs_growpart(self):
        runner = FakeCommandRunner()
        grow_partition("/dev/loop0", 2, runner=runner)
        assert runner.calls == [("growpart", "/dev/loop0", "2")]

    def test_failure_raises(self):
        runner = FakeCommandRunner()
        runner.fail(("growpart",), stderr="NOCHANGE")
        with pytest.raises(ToolError):
            grow_partition("/dev/loop0", 2, runner=runner)


class TestDetectFSType:
    """Tests for detect_fs_type."""

    @pytest.mark.parametrize(
        "probe,expected",
        [
            ("xfs\n", FSType.XFS),
            ("ext4\n", FSType.EXT4),
            ("EXT3", FSType.EXT3),
            ("btrfs\n", FSType.BTRFS),
            ("ntfs\n", FSType.UNKNOWN),
            ("", FSType.UNKNOWN),
        ],
    )
    def test_maps_probe_output(self, probe, expected):
        runner = FakeCommandRunner({("blkid",): ok(probe)})
        assert detect_fs_type("/dev/loop0p2", runner=runner) is expected
        assert runner.calls == [("blkid", "/dev/loop0p2", "-o", "value", "-s", "TYPE")]

    def test_unrecognized_superblock_is_unknown(self):
        """Test that blkid exiting 2 with no output maps to UNKNOWN."""
        runner = FakeCommandRunner()
        runner.fail(("blkid",), exit_code=2, stderr="")
        assert detect_fs_type("/dev/loop0p2", runner=runner) is FSType.UNKNOWN

    def test_other_blkid_failures_raise(self):
        runner = FakeCommandRunner()
        runner.fail(("blkid",), exit_code=4, stderr="usage error")
        with pytest.raises(ToolError):
            detect_fs_type("/dev/loop0p2", runner=runner)


class TestGrowFilesystem:
    """Tests for grow_filesystem dispatch."""

    @pytest.mark.parametrize(
        "fs_type,command",
        [
            (FSType.XFS, ("xfs_growfs", "-d", "/dev/loop0p2")),
            (FSType.EXT2, ("resize2fs", "/dev/loop0p2")),
            (FSType.EXT3, ("resize2fs", "/dev/loop0p2")),
            (FSType.EXT4, ("resize2fs", "/dev/loop0p2")),
            (FSType.BTRFS, ("btrfs", "filesystem", "resize", "max", "/work/mnt")),
        ],
    )
    def test_dispatches_to_matching_tool(self, fs_type, command):
        runner = FakeCommandRunner()
        grow_filesystem("/dev/loop0p2", fs_type, mount_point="/work/mnt", runner=runner)
        assert runner.calls == [command]

    def test_unknown_is_fatal_and_runs_nothing(self):
        runner = FakeCommandRunner()
        with pytest.raises(UnsupportedFormatError):
            grow_filesystem("/dev/loop0p2", FSType.UNKNOWN, runner=runner)
        assert runner.calls == []

    def test_btrfs_requires_mount_point(self):
        runner = FakeCommandRunner()
        with pytest.raises(MountError):
            grow_filesystem("/dev/loop0p2", FSType.BTRFS, runner=runner)
        assert runner.calls == []


class TestRootMountOptions:
    def test_btrfs_mounts_root_subvolume(self):
        assert root_mount_options(FSType.BTRFS) == "subvol=root"

    @pytest.mark.parametrize("fs_type", [FSType.XFS, FSType.EXT4])
    def test_others_use_nouuid(self, fs_type):
        assert root_mount_options(fs_type) == "nouuid"
