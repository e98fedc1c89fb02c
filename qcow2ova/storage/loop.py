"""Loop device management for raw disk images.

Attaches the raw image to the next free loop device, asks the kernel to
re-read its partition table and discovers the data partition.

Operations:
    - LoopDeviceManager.bind(): losetup -f --show <file>
    - LoopDeviceManager.rescan(): partprobe <device>
    - LoopDeviceManager.partition_count(): counts /dev/* rows of fdisk -l
    - LoopDeviceManager.unbind(): losetup -d <device>, never raises

A manager holds at most one unreleased binding; binding a second file before
unbinding the first raises immediately.

Example:
    >>> loops = LoopDeviceManager()
    >>> binding = loops.bind(Path("/tmp/work/disk.raw"))
    >>> binding = binding.with_partition(loops.partition_count(binding.device))
    >>> binding.partition_device
    '/dev/loop0p2'
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from qcow2ova.domain import LoopBinding
from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.command_runner import CommandRunner, default_runner
from qcow2ova.storage.device_lock import loop_allocation
from qcow2ova.storage.exceptions import ToolError


log = LoggerFactory.for_storage()

LOSETUP = "losetup"
PARTPROBE = "partprobe"
FDISK = "fdisk"


class LoopDeviceManager:
    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or default_runner
        self.binding: Optional[LoopBinding] = None

    def bind(self, backing_file: Path) -> LoopBinding:
        """Attach ``backing_file`` to the next free loop device.

        Raises:
            RuntimeError: If this manager already holds a binding
            ToolError: If losetup fails or prints no device
        """
        if self.binding is not None:
            raise RuntimeError(
                f"{self.binding.device} is still bound to {self.binding.backing_file}"
            )
        with loop_allocation(str(backing_file)):
            result = self.runner.run_checked([LOSETUP, "-f", "--show", str(backing_file)])
        device = result.stdout.strip()
        if not device.startswith("/dev/"):
            raise ToolError(result.args, result.exit_code, result.stdout, "no loop device reported")
        self.binding = LoopBinding(backing_file=Path(backing_file), device=device)
        log.info(f"Attached {backing_file} to {device}")
        return self.binding

    def rescan(self, device: str) -> None:
        """Force the kernel to re-read the partition table of ``device``."""
        self.runner.run_checked([PARTPROBE, device])

    def partition_count(self, device: str) -> int:
        """Count the partitions fdisk lists for ``device``."""
        result = self.runner.run_checked([FDISK, "-l", device])
        count = sum(
            1 for line in result.stdout.splitlines() if line.strip().startswith("/dev/")
        )
        log.debug(f"{device} has {count} partition(s)")
        return count

    def discover_partition(self, binding: LoopBinding) -> LoopBinding:
        """Record the last listed partition as the data partition."""
        count = self.partition_count(binding.device)
        if count < 1:
            raise ToolError(
                [FDISK, "-l", binding.device], 0, "", f"no partitions found on {binding.device}"
            )
        self.binding = binding.with_partition(count)
        return self.binding

    def unbind(self, binding: Optional[LoopBinding] = None) -> bool:
        """Detach the loop device. Failures are logged, not raised.

        Returns:
            True if the device was released
        """
        binding = binding or self.binding
        if binding is None:
            return True
        result = self.runner.run([LOSETUP, "-d", binding.device])
        if self.binding is not None and self.binding.device == binding.device:
            self.binding = None
        if not result.ok:
            log.warning(
                f"Failed to remove loop device {binding.device}, "
                f"exit code: {result.exit_code}, stderr: {result.stderr.strip()}"
            )
            return False
        log.debug(f"Detached {binding.device}")
        return True
