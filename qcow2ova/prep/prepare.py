"""Guest customization of a grown raw disk image.

Prepares rhel and centos images for capture: grows the root partition to the
new disk size, installs cloud-init, multipath and the PowerVM tooling through
a setup script run inside a chroot, and sets the root password.

State machine (FAILED reachable from every non-terminal state):

    UNMOUNTED -> ROOT_MOUNTED -> BOOT_MOUNTED -> HOST_BIND_MOUNTED
              -> IN_CHROOT -> DONE

Every acquisition pushes its release onto one ``ReleaseStack``, so leaving
``prepare()`` by any path exits the chroot, unmounts the host binds, /boot
and the root in that order and finally detaches the loop device.

coreos images boot as shipped and are returned untouched.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional, Sequence

from qcow2ova.config.settings import get_setting
from qcow2ova.domain import (
    ConversionJob,
    FSType,
    GuestState,
    LoopBinding,
    MountEntry,
)
from qcow2ova.logging import LoggerFactory
from qcow2ova.prep.chroot import ChrootRegistry
from qcow2ova.prep.chroot import registry as default_registry
from qcow2ova.prep.templates import CLOUD_CONFIG, DS_IDENTIFY, render_setup_script
from qcow2ova.storage import filesystem, mount
from qcow2ova.storage.command_runner import CommandRunner, default_runner
from qcow2ova.storage.exceptions import (
    BootManifestError,
    ImageIOError,
    ToolError,
    UnsupportedFormatError,
)
from qcow2ova.storage.loop import LoopDeviceManager
from qcow2ova.storage.release_stack import ReleaseStack


HOST_PARTITIONS = ("/proc", "/dev", "/sys", "/run", "/etc/machine-id")

SETUP_SCRIPT = "setup.sh"
CLOUD_CONFIG_PATH = "etc/cloud/cloud.cfg"
DS_IDENTIFY_PATH = "etc/cloud/ds-identify.cfg"


def boot_manifest(arch: str) -> list[str]:
    """Glob patterns that must match inside /boot before customizing."""
    return [
        f"config-*.{arch}",
        "efi",
        "grub2",
        f"initramfs-*.{arch}.img",
        "loader",
        f"symvers-*.{arch}.*",
        f"System.map-*.{arch}",
        f"vmlinuz-*.{arch}",
    ]


def boot_device_uuid(fstab: Path) -> Optional[str]:
    """UUID of the /boot device declared in ``fstab``, or None."""
    uuid = None
    for line in fstab.read_text(encoding="utf-8").splitlines():
        fields = line.split()
        if len(fields) < 2 or fields[0].startswith("#"):
            continue
        if fields[1] == "/boot" and fields[0].upper().startswith("UUID="):
            uuid = fields[0].split("=", 1)[1].strip('"')
    return uuid


def verify_boot_manifest(boot_dir: Path, arch: str) -> None:
    """Raise BootManifestError for the first manifest entry with no match."""
    for pattern in boot_manifest(arch):
        if not any(boot_dir.glob(pattern)):
            raise BootManifestError(pattern, str(boot_dir))


def copy_into_guest(paths: Sequence[Path], dest_dir: Path) -> None:
    """Copy host files or directories into ``dest_dir``, keeping modes.

    Raises:
        ImageIOError: If ``dest_dir`` exists and is not a directory
    """
    if dest_dir.exists() and not dest_dir.is_dir():
        raise ImageIOError(str(dest_dir), "path exists but it is a file")
    dest_dir.mkdir(parents=True, exist_ok=True)
    for src in paths:
        src = Path(src)
        target = dest_dir / src.name
        if src.is_dir():
            shutil.copytree(src, target, dirs_exist_ok=True)
        else:
            shutil.copy2(src, target)


def _guest_path(root: Path, path: str) -> Path:
    return root / path.lstrip("/")


class GuestCustomizer:
    """Runs the customization state machine for one job at a time."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        chroot_registry: Optional[ChrootRegistry] = None,
        host_partitions: Sequence[str] = HOST_PARTITIONS,
        loops: Optional[LoopDeviceManager] = None,
    ):
        self.runner = runner or default_runner
        self.chroot_registry = chroot_registry or default_registry
        self.host_partitions = tuple(host_partitions)
        self.loops = loops or LoopDeviceManager(self.runner)
        self.state = GuestState.UNMOUNTED
        self.mounts: list[MountEntry] = []
        self.log = LoggerFactory.for_prep()

    def _mount(
        self,
        stack: ReleaseStack,
        source: str,
        target: Path,
        options: str,
    ) -> None:
        mount.mount(source, target, options, runner=self.runner)
        entry = MountEntry(source, target, options, len(self.mounts))
        self.mounts.append(entry)
        stack.push(f"umount {target}", self._umount, entry)

    def _umount(self, entry: MountEntry) -> None:
        mount.umount(entry.target, runner=self.runner)
        if self.mounts and self.mounts[-1] is entry:
            self.mounts.pop()

    def prepare(self, job: ConversionJob, mnt: Path, raw_image: Path) -> GuestState:
        """Customize the guest inside ``raw_image`` using ``mnt`` as root mount.

        Returns:
            GuestState.DONE

        Raises:
            Qcow2OvaError: The first failing step; every acquired resource
                has been released by the time it propagates
        """
        self.log = LoggerFactory.for_prep(job_id=job.image_name)
        if not job.distro.requires_customization:
            self.log.info(f"No image preparation required for {job.distro.value}")
            self.state = GuestState.DONE
            return self.state

        try:
            with ReleaseStack() as stack:
                self._run(job, Path(mnt), Path(raw_image), stack)
        except BaseException:
            self.state = GuestState.FAILED
            raise
        self.state = GuestState.DONE
        return self.state

    def _run(
        self, job: ConversionJob, mnt: Path, raw_image: Path, stack: ReleaseStack
    ) -> None:
        binding: LoopBinding = self.loops.bind(raw_image)
        stack.push(
            f"unbind {binding.device}", self.loops.unbind, binding, propagate=False
        )
        self.loops.rescan(binding.device)
        binding = self.loops.discover_partition(binding)
        partition = binding.partition_device

        fs_type = filesystem.detect_fs_type(partition, runner=self.runner)
        if fs_type is FSType.UNKNOWN:
            raise UnsupportedFormatError(partition, fs_type.value)

        self._mount(stack, partition, mnt, filesystem.root_mount_options(fs_type))
        self.state = GuestState.ROOT_MOUNTED

        filesystem.grow_partition(
            binding.device, binding.partition_index, runner=self.runner
        )
        filesystem.grow_filesystem(
            partition, fs_type, mount_point=mnt, runner=self.runner
        )

        boot_dir = mnt / "boot"
        uuid = boot_device_uuid(mnt / "etc" / "fstab")
        if uuid:
            result = self.runner.run_checked(["blkid", "--uuid", uuid])
            boot_device = result.stdout.strip()
            if not boot_device:
                raise ToolError(result.args, result.exit_code, result.stdout, result.stderr)
            self._mount(stack, boot_device, boot_dir, "nouuid")
            self.state = GuestState.BOOT_MOUNTED

        verify_boot_manifest(boot_dir, get_setting("supported_arch", "ppc64le"))

        for host_path in self.host_partitions:
            self._mount(stack, host_path, _guest_path(mnt, host_path), "bind")
        self.state = GuestState.HOST_BIND_MOUNTED

        self._stage_artifacts(job, mnt)
        if job.write_files:
            copy_into_guest(job.write_files, _guest_path(mnt, job.write_to_dir))

        session = self.chroot_registry.enter(mnt)
        stack.push(f"exit chroot {mnt}", session.exit)
        self.state = GuestState.IN_CHROOT

        self.log.info("Running the setup script inside the guest")
        self.runner.run_checked([f"/{SETUP_SCRIPT}"])

    def _stage_artifacts(self, job: ConversionJob, mnt: Path) -> None:
        script = render_setup_script(
            job.distro.value,
            rhn_user=job.rhn_user,
            rhn_password=job.rhn_password,
            root_password=job.root_password,
            template=job.prep_template,
        )
        setup = mnt / SETUP_SCRIPT
        setup.write_text(script, encoding="utf-8")
        os.chmod(setup, 0o744)

        for relative, text in ((CLOUD_CONFIG_PATH, CLOUD_CONFIG), (DS_IDENTIFY_PATH, DS_IDENTIFY)):
            path = mnt / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        self.log.debug(f"Staged {SETUP_SCRIPT}, {CLOUD_CONFIG_PATH}, {DS_IDENTIFY_PATH}")
