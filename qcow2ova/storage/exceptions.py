"""Custom exceptions for the qcow2 to OVA conversion pipeline.

This module defines a hierarchy of exceptions so callers can tell which stage
failed and what the user can do about it.

Exception Hierarchy:
    Qcow2OvaError (base)
        ├── ToolError
        ├── ImageIOError
        │   └── ChecksumMismatchError
        ├── FetchTimeoutError
        ├── ValidationError
        ├── UnsupportedFormatError
        ├── UnsupportedDistroError
        ├── MountError
        │   └── BootManifestError
        ├── ChrootError
        ├── PackagingError
        └── PipelineStepError

Usage:
    from qcow2ova.storage.exceptions import ToolError

    result = runner.run(["losetup", "-f", "--show", image])
    if result.exit_code != 0:
        raise ToolError.from_result(result)
"""

from __future__ import annotations

from typing import Sequence


class Qcow2OvaError(Exception):
    """Base exception for all conversion failures."""



class ToolError(Qcow2OvaError):
    """An external tool exited with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.command = list(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"{' '.join(self.command)} exited with: {exit_code}, "
            f"stdout: {stdout.strip()}, stderr: {stderr.strip()}"
        )

    @classmethod
    def from_result(cls, result) -> ToolError:
        return cls(result.args, result.exit_code, result.stdout, result.stderr)


class ImageIOError(Qcow2OvaError):
    """Filesystem access failed (missing source, permissions, disk full)."""

    def __init__(self, path: str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class ChecksumMismatchError(ImageIOError):
    """Acquired image does not match the expected sha256."""

    def __init__(self, path: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            path, f"checksum mismatch, expected: {expected}, actual: {actual}"
        )


class FetchTimeoutError(Qcow2OvaError, TimeoutError):
    """Network fetch exceeded its time budget."""

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"Fetching {url} did not complete within {timeout:g}s")


class ValidationError(Qcow2OvaError):
    """A named preflight rule failed."""

    def __init__(self, rule_name: str, cause: BaseException | str, hint: str = ""):
        self.rule_name = rule_name
        self.cause = cause
        self.hint = hint
        msg = f"check failed: {rule_name}: {cause}"
        if hint:
            msg += f"\nHint: {hint}"
        super().__init__(msg)


class UnsupportedFormatError(Qcow2OvaError):
    """Filesystem type is outside the set the grower knows how to handle."""

    def __init__(self, device: str, fs_type: str):
        self.device = device
        self.fs_type = fs_type
        super().__init__(
            f"unable to handle the {fs_type or 'unknown'} filesystem for {device}"
        )


class UnsupportedDistroError(Qcow2OvaError):
    """Requested distribution is not one the pipeline can prepare."""

    def __init__(self, distro: str):
        self.distro = distro
        super().__init__(f"not a supported distro: {distro}")


class MountError(Qcow2OvaError):
    """Base exception for mount-related errors."""



class BootManifestError(MountError):
    """An expected /boot entry is missing from the guest image."""

    def __init__(self, entry: str, boot_dir: str):
        self.entry = entry
        self.boot_dir = boot_dir
        super().__init__(f"{entry} does not exist in the boot directory {boot_dir}")


class ChrootError(Qcow2OvaError):
    """Entering or leaving a chroot failed."""



class PackagingError(Qcow2OvaError):
    """Building the OVA archive failed."""



class PipelineStepError(Qcow2OvaError):
    """Wraps the first fatal error with the name of the step that raised it."""

    def __init__(self, step: str, error: BaseException):
        self.step = step
        self.error = error
        super().__init__(f"{step} failed: {error}")
