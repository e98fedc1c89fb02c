"""Partition and filesystem growth after the raw image was enlarged.

growpart extends the partition entry to the end of the loop device, then the
filesystem is grown with the tool that matches its type:

    xfs          xfs_growfs -d <partition>
    ext2/3/4     resize2fs <partition>
    btrfs        btrfs filesystem resize max <mountpoint>   (must be mounted)
    anything else  UnsupportedFormatError, nothing is guessed
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from qcow2ova.domain import FSType
from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.command_runner import CommandRunner, default_runner
from qcow2ova.storage.exceptions import MountError, ToolError, UnsupportedFormatError


log = LoggerFactory.for_storage()

BTRFS_ROOT_SUBVOLUME = "root"
# blkid exit status when no superblock is recognized
BLKID_NOT_FOUND = 2


def grow_partition(
    device: str, partition_index: int, runner: Optional[CommandRunner] = None
) -> None:
    """Extend partition ``partition_index`` of ``device`` to the end of the disk."""
    runner = runner or default_runner
    log.info(f"Growing partition {partition_index} of {device}")
    runner.run_checked(["growpart", device, str(partition_index)])


def detect_fs_type(
    partition_device: str, runner: Optional[CommandRunner] = None
) -> FSType:
    """Probe the superblock of ``partition_device`` with blkid.

    A partition blkid cannot identify is reported as FSType.UNKNOWN.

    Raises:
        ToolError: If blkid fails for any other reason
    """
    runner = runner or default_runner
    result = runner.run(["blkid", partition_device, "-o", "value", "-s", "TYPE"])
    if result.exit_code == BLKID_NOT_FOUND and not result.stdout.strip():
        log.warning(f"blkid found no filesystem on {partition_device}")
        return FSType.UNKNOWN
    if not result.ok:
        raise ToolError.from_result(result)
    fs_type = FSType.from_probe(result.stdout)
    log.debug(f"{partition_device} filesystem: {result.stdout.strip() or 'none'}")
    return fs_type


def root_mount_options(fs_type: FSType) -> str:
    """Mount options for the guest root partition."""
    if fs_type is FSType.BTRFS:
        return f"subvol={BTRFS_ROOT_SUBVOLUME}"
    return "nouuid"


def grow_filesystem(
    partition_device: str,
    fs_type: FSType,
    mount_point: Optional[Union[str, Path]] = None,
    runner: Optional[CommandRunner] = None,
) -> None:
    """Grow the filesystem on ``partition_device`` to fill its partition.

    Args:
        partition_device: Partition node (e.g., /dev/loop0p2)
        fs_type: Result of detect_fs_type()
        mount_point: Where the partition is mounted; required for btrfs
        runner: Command runner

    Raises:
        UnsupportedFormatError: For FSType.UNKNOWN
        MountError: For btrfs without a mount point
        ToolError: If the grow tool fails
    """
    runner = runner or default_runner

    if fs_type is FSType.XFS:
        command = ["xfs_growfs", "-d", partition_device]
    elif fs_type.is_ext:
        command = ["resize2fs", partition_device]
    elif fs_type is FSType.BTRFS:
        if mount_point is None:
            raise MountError(
                f"btrfs on {partition_device} must be mounted before it can grow"
            )
        command = ["btrfs", "filesystem", "resize", "max", str(mount_point)]
    else:
        raise UnsupportedFormatError(partition_device, fs_type.value)

    log.info(f"Growing {fs_type.value} filesystem on {partition_device}")
    runner.run_checked(command)
