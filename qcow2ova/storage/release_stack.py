"""Ordered LIFO stack of release actions.

Every host resource the pipeline acquires (loop device, mount, chroot) pushes
its release onto a ``ReleaseStack`` right after acquisition succeeds. Leaving
the ``with`` block unwinds the stack in reverse order, exactly once.

Failure handling depends on how the block exits:

- When the block is leaving because of an error, every release is attempted
  and each release failure is logged at WARNING, never raised.
- When the block completed normally, every release is still attempted, and
  the first failure of a release pushed with ``propagate=True`` is raised
  once the stack is empty.

Releases pushed with ``propagate=False`` (loop unbind) are only ever logged.

Example:
    with ReleaseStack() as stack:
        binding = loops.bind(raw_image)
        stack.push(f"unbind {binding.device}", loops.unbind, binding, propagate=False)
        mount.mount(partition, mnt, "nouuid")
        stack.push(f"umount {mnt}", mount.umount, mnt)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from qcow2ova.logging import LoggerFactory


log = LoggerFactory.for_storage()


@dataclass
class _Release:
    name: str
    callback: Callable[..., Any]
    args: tuple[Any, ...] = ()
    propagate: bool = True


@dataclass
class ReleaseStack:
    _releases: list[_Release] = field(default_factory=list)
    _unwound: bool = False

    def push(
        self,
        name: str,
        callback: Callable[..., Any],
        *args: Any,
        propagate: bool = True,
    ) -> None:
        if self._unwound:
            raise RuntimeError("cannot push onto a release stack that was unwound")
        self._releases.append(_Release(name, callback, args, propagate))

    def __len__(self) -> int:
        return len(self._releases)

    def unwind(self, failed: bool) -> None:
        """Run every pending release in LIFO order.

        Args:
            failed: True when unwinding because of an error
        """
        self._unwound = True
        first_error: Optional[BaseException] = None
        while self._releases:
            release = self._releases.pop()
            log.debug(f"Releasing: {release.name}")
            try:
                release.callback(*release.args)
            except Exception as error:
                if failed or not release.propagate:
                    log.warning(f"Release '{release.name}' failed: {error}")
                    continue
                log.error(f"Release '{release.name}' failed: {error}")
                if first_error is None:
                    first_error = error
        if first_error is not None:
            raise first_error

    def __enter__(self) -> ReleaseStack:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.unwind(failed=exc_type is not None)
        return False
