"""Process-wide lock serializing loop device allocation.

``losetup -f --show`` is atomic at the OS level, but the loop device, the
mount table and the chroot are process-wide state. Two conversions in the
same process must not interleave their allocation, so every bind happens
inside ``loop_allocation()``.

Usage:
    from qcow2ova.storage.device_lock import loop_allocation

    with loop_allocation("disk.raw"):
        runner.run_checked(["losetup", "-f", "--show", "disk.raw"])
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator

from qcow2ova.logging import LoggerFactory


log = LoggerFactory.for_storage()

_lock = threading.Lock()


@contextmanager
def loop_allocation(backing_file: str) -> Generator[None, None, None]:
    """Hold the allocation lock while a loop device is being bound.

    Args:
        backing_file: File about to be attached (for logging only)
    """
    with _lock:
        log.debug(f"Loop allocation started for {backing_file}")
        try:
            yield
        finally:
            log.debug(f"Loop allocation completed for {backing_file}")
