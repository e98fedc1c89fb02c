"""
Pytest configuration and shared fixtures for qcow2ova tests.

External tools are never executed: components receive a FakeCommandRunner
that records every argv and answers from a script of canned results.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from qcow2ova.domain import ConversionJob, Distro
from qcow2ova.storage.command_runner import CommandResult, CommandRunner


Response = Union[CommandResult, Callable[[Tuple[str, ...]], CommandResult]]


# ==============================================================================
# Command Runner Fakes
# ==============================================================================


class FakeCommandRunner(CommandRunner):
    """Records commands and returns scripted results.

    Responses are keyed by an argv prefix; the longest matching prefix wins.
    Unscripted commands succeed with empty output.
    """

    def __init__(self, responses: Optional[Dict[Tuple[str, ...], Response]] = None):
        self.calls: List[Tuple[str, ...]] = []
        self.responses: Dict[Tuple[str, ...], Response] = dict(responses or {})

    def script(self, prefix: Sequence[str], response: Response) -> None:
        self.responses[tuple(prefix)] = response

    def fail(self, prefix: Sequence[str], exit_code: int = 1, stderr: str = "boom") -> None:
        self.responses[tuple(prefix)] = lambda args: CommandResult(args, exit_code, "", stderr)

    def run(self, command, input_text=None) -> CommandResult:
        args = tuple(str(part) for part in command)
        self.calls.append(args)
        match = None
        for prefix in self.responses:
            if args[: len(prefix)] == prefix and (match is None or len(prefix) > len(match)):
                match = prefix
        if match is None:
            return CommandResult(args, 0, "", "")
        response = self.responses[match]
        if callable(response):
            return response(args)
        return CommandResult(args, response.exit_code, response.stdout, response.stderr)

    def commands(self, name: str) -> List[Tuple[str, ...]]:
        """Recorded calls whose executable is ``name``."""
        return [call for call in self.calls if call[0] == name]


def ok(stdout: str = "") -> CommandResult:
    return CommandResult((), 0, stdout, "")


FDISK_TWO_PARTITIONS = """\
Disk /dev/loop0: 20 GiB, 21474836480 bytes, 41943040 sectors
Units: sectors of 1 * 512 = 512 bytes
Disklabel type: dos

Device       Boot Start      End  Sectors Size Id Type
/dev/loop0p1 *     2048    10239     8192   4M 41 PPC PReP Boot
/dev/loop0p2      10240 20971486 20961247  10G 83 Linux
"""


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    """Runner scripted for a loop device with two partitions and an xfs root."""
    runner = FakeCommandRunner()
    runner.script(("losetup", "-f", "--show"), ok("/dev/loop0\n"))
    runner.script(("fdisk", "-l"), ok(FDISK_TWO_PARTITIONS))
    runner.script(("blkid", "/dev/loop0p2", "-o", "value", "-s", "TYPE"), ok("xfs\n"))
    return runner


# ==============================================================================
# Chroot Fakes
# ==============================================================================


class FakeChrootSession:
    def __init__(self, registry: "FakeChrootRegistry", path: Path):
        self.registry = registry
        self.path = path
        self.active = True

    def exit(self) -> None:
        self.active = False
        self.registry.events.append(("exit", self.path))
        self.registry.active = None


class FakeChrootRegistry:
    """Stands in for the process chroot registry without calling chroot(2)."""

    def __init__(self):
        self.active: Optional[FakeChrootSession] = None
        self.events: List[Tuple[str, Path]] = []

    def enter(self, path) -> FakeChrootSession:
        assert self.active is None, "nested chroot"
        self.active = FakeChrootSession(self, Path(path))
        self.events.append(("enter", Path(path)))
        return self.active


@pytest.fixture
def fake_chroot() -> FakeChrootRegistry:
    return FakeChrootRegistry()


# ==============================================================================
# Guest Image Fixtures
# ==============================================================================


BOOT_FILES = [
    "config-4.18.0-193.el8.ppc64le",
    "initramfs-4.18.0-193.el8.ppc64le.img",
    "symvers-4.18.0-193.el8.ppc64le.gz",
    "System.map-4.18.0-193.el8.ppc64le",
    "vmlinuz-4.18.0-193.el8.ppc64le",
]
BOOT_DIRS = ["efi", "grub2", "loader"]


@pytest.fixture
def guest_root(tmp_path) -> Path:
    """A directory laid out like a mounted rhel/centos root filesystem."""
    root = tmp_path / "mnt"
    boot = root / "boot"
    boot.mkdir(parents=True)
    for name in BOOT_FILES:
        (boot / name).write_text("")
    for name in BOOT_DIRS:
        (boot / name).mkdir()
    (root / "etc").mkdir()
    (root / "etc" / "fstab").write_text(
        "UUID=1111-aaaa /                       xfs     defaults        0 0\n"
    )
    return root


@pytest.fixture
def make_job(tmp_path) -> Callable[..., ConversionJob]:
    """Factory for ConversionJob with test-friendly defaults."""

    def _make(**overrides) -> ConversionJob:
        values = dict(
            image_name="centos-82",
            source=str(tmp_path / "source.qcow2"),
            distro=Distro.CENTOS,
            image_size_gib=20,
            target_disk_size_gib=120,
            temp_dir=tmp_path,
            output_dir=tmp_path / "out",
            root_password="s3cret",
        )
        values.update(overrides)
        return ConversionJob(**values)

    return _make
