"""Tests for the qemu-img wrappers."""

from pathlib import Path

import pytest

from conftest import FakeCommandRunner
from qcow2ova.image.qemu_img import convert_to_raw, resize
from qcow2ova.storage.exceptions import ToolError


class TestQemuImg:
    def test_convert_to_raw(self):
        runner = FakeCommandRunner()
        convert_to_raw(Path("/w/disk.qcow2"), Path("/w/ova-img-dir/disk.raw"), runner=runner)
        assert runner.calls == [
            ("qemu-img", "convert", "-f", "qcow2", "-O", "raw", "/w/disk.qcow2", "/w/ova-img-dir/disk.raw")
        ]

    def test_resize(self):
        runner = FakeCommandRunner()
        resize(Path("/w/disk.raw"), 20, runner=runner)
        assert runner.calls == [("qemu-img", "resize", "-f", "raw", "/w/disk.raw", "20G")]

    def test_failure_carries_output(self):
        """Test that a conversion failure is fatal and keeps the tool output."""
        runner = FakeCommandRunner()
        runner.fail(("qemu-img", "convert"), exit_code=1, stderr="Image is not in qcow2 format")
        with pytest.raises(ToolError) as exc_info:
            convert_to_raw(Path("/w/a"), Path("/w/b"), runner=runner)
        assert exc_info.value.exit_code == 1
        assert "not in qcow2 format" in exc_info.value.stderr
        assert len(runner.calls) == 1
