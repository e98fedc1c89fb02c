"""Tests for the conversion error hierarchy."""

import pytest

from qcow2ova.storage.command_runner import CommandResult
from qcow2ova.storage.exceptions import (
    BootManifestError,
    ChecksumMismatchError,
    FetchTimeoutError,
    ImageIOError,
    MountError,
    PipelineStepError,
    Qcow2OvaError,
    ToolError,
    UnsupportedFormatError,
    ValidationError,
)


class TestToolError:
    """Tests for ToolError."""

    def test_carries_exit_code_and_output(self):
        """Test that the error keeps everything the tool reported."""
        error = ToolError(["growpart", "/dev/loop0", "2"], 2, "out\n", "err\n")
        assert error.command == ["growpart", "/dev/loop0", "2"]
        assert error.exit_code == 2
        assert error.stdout == "out\n"
        assert error.stderr == "err\n"
        assert "growpart /dev/loop0 2 exited with: 2" in str(error)
        assert "stderr: err" in str(error)

    def test_from_result(self):
        """Test building a ToolError from a CommandResult."""
        result = CommandResult(("qemu-img", "convert"), 1, "", "bad image")
        error = ToolError.from_result(result)
        assert error.command == ["qemu-img", "convert"]
        assert error.stderr == "bad image"


class TestValidationError:
    """Tests for ValidationError."""

    def test_message_includes_rule_and_hint(self):
        error = ValidationError("diskspace", "not enough space", "make some space")
        assert error.rule_name == "diskspace"
        assert str(error) == "check failed: diskspace: not enough space\nHint: make some space"

    def test_message_without_hint(self):
        error = ValidationError("user", "non-root")
        assert "Hint" not in str(error)


class TestHierarchy:
    """Tests that every error shares the common base."""

    @pytest.mark.parametrize(
        "error",
        [
            ToolError(["x"], 1),
            ImageIOError("/a", "missing"),
            ChecksumMismatchError("/a", "aa", "bb"),
            FetchTimeoutError("http://h/x", 5),
            UnsupportedFormatError("/dev/loop0p2", "ntfs"),
            BootManifestError("grub2", "/mnt/boot"),
            PipelineStepError("convert", RuntimeError("x")),
        ],
    )
    def test_is_qcow2ova_error(self, error):
        assert isinstance(error, Qcow2OvaError)

    def test_checksum_mismatch_is_io_error(self):
        error = ChecksumMismatchError("/a", "aa", "bb")
        assert isinstance(error, ImageIOError)
        assert "expected: aa, actual: bb" in str(error)

    def test_fetch_timeout_is_builtin_timeout(self):
        error = FetchTimeoutError("http://h/x", 1.5)
        assert isinstance(error, TimeoutError)
        assert "1.5s" in str(error)

    def test_boot_manifest_is_mount_error(self):
        assert isinstance(BootManifestError("efi", "/mnt/boot"), MountError)

    def test_pipeline_step_error(self):
        cause = ValueError("bad")
        error = PipelineStepError("resize", cause)
        assert error.step == "resize"
        assert error.error is cause
        assert str(error) == "resize failed: bad"
