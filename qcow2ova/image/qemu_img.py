"""qemu-img wrappers for format conversion and resizing."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.command_runner import CommandRunner, default_runner


log = LoggerFactory.for_image()

QEMU_IMG = "qemu-img"


def convert_to_raw(
    src: Path, dst: Path, runner: Optional[CommandRunner] = None
) -> None:
    """Convert the qcow2 image ``src`` into the raw image ``dst``.

    Raises:
        ToolError: If qemu-img exits non-zero
    """
    runner = runner or default_runner
    log.info(f"Converting {src} to raw format")
    runner.run_checked([QEMU_IMG, "convert", "-f", "qcow2", "-O", "raw", str(src), str(dst)])


def resize(path: Path, size_gib: int, runner: Optional[CommandRunner] = None) -> None:
    """Set the logical size of the raw image at ``path`` to ``size_gib`` GiB."""
    runner = runner or default_runner
    log.info(f"Resizing {path} to {size_gib}G")
    runner.run_checked([QEMU_IMG, "resize", "-f", "raw", str(path), f"{size_gib}G"])
