"""Tests for mount and unmount helpers."""

from unittest.mock import patch

import pytest

from conftest import FakeCommandRunner
from qcow2ova.storage.command_runner import CommandResult
from qcow2ova.storage.exceptions import MountError
from qcow2ova.storage.mount import BUSY_RETRIES, mount, umount


def _stderr(message, exit_code=32):
    return lambda args: CommandResult(args, exit_code, "", message)


class TestMount:
    def test_mount_with_options(self):
        runner = FakeCommandRunner()
        mount("/dev/loop0p2", "/work/mnt", "nouuid", runner=runner)
        assert runner.calls == [("mount", "-o", "nouuid", "/dev/loop0p2", "/work/mnt")]

    def test_mount_failure(self):
        runner = FakeCommandRunner()
        runner.fail(("mount",), stderr="wrong fs type")
        with pytest.raises(MountError, match="wrong fs type"):
            mount("/dev/loop0p2", "/work/mnt", "nouuid", runner=runner)


class TestUmount:
    """Tests for umount retries and tolerated errors."""

    def test_umount(self):
        runner = FakeCommandRunner()
        umount("/work/mnt", runner=runner)
        assert runner.calls == [("umount", "/work/mnt")]

    @pytest.mark.parametrize(
        "message", ["umount: /work/mnt: not mounted.", "umount: no mount point specified."]
    )
    def test_already_unmounted_is_ignored(self, message):
        runner = FakeCommandRunner({("umount",): _stderr(message)})
        umount("/work/mnt", runner=runner)
        assert len(runner.calls) == 1

    @patch("qcow2ova.storage.mount.time.sleep")
    def test_busy_retries_then_succeeds(self, mock_sleep):
        attempts = iter([_stderr("target is busy"), _stderr("target is busy")])

        def respond(args):
            return next(attempts, lambda a: CommandResult(a, 0))(args)

        runner = FakeCommandRunner({("umount",): respond})
        umount("/work/mnt", runner=runner)
        assert runner.calls == [("umount", "/work/mnt")] * 3

    @patch("qcow2ova.storage.mount.time.sleep")
    def test_busy_falls_back_to_lazy_umount(self, mock_sleep):
        runner = FakeCommandRunner({("umount", "/work/mnt"): _stderr("target is busy")})
        umount("/work/mnt", runner=runner)
        assert runner.calls[-1] == ("umount", "-lf", "/work/mnt")
        assert len(runner.commands("umount")) == BUSY_RETRIES + 2

    @patch("qcow2ova.storage.mount.time.sleep")
    def test_lazy_umount_failure_raises(self, mock_sleep):
        runner = FakeCommandRunner(
            {
                ("umount", "/work/mnt"): _stderr("target is busy"),
                ("umount", "-lf"): _stderr("permission denied"),
            }
        )
        with pytest.raises(MountError, match="permission denied"):
            umount("/work/mnt", runner=runner)

    def test_other_failure_raises(self):
        runner = FakeCommandRunner({("umount",): _stderr("permission denied")})
        with pytest.raises(MountError):
            umount("/work/mnt", runner=runner)
        assert len(runner.calls) == 1
