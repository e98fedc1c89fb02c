"""Chroot sessions with a process-wide single-session registry.

The process root is global state, so at most one ``ChrootSession`` may be
outstanding at a time. The registry hands out a session only when none is
active; a second ``enter()`` fails fast with ``ChrootError`` instead of
nesting.

Usage:
    from qcow2ova.prep.chroot import registry

    with registry.enter("/tmp/qcow2ova-x/mnt"):
        runner.run_checked(["/setup.sh"])
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Optional, Union

from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.exceptions import ChrootError


log = LoggerFactory.for_prep()


class ChrootSession:
    """An active chroot into ``path``.

    Holds an open descriptor on the real root directory so ``exit()`` can
    change back to it and re-root there.
    """

    def __init__(self, registry: ChrootRegistry, path: Path, root_fd: int):
        self.registry = registry
        self.path = path
        self.root_fd = root_fd
        self.active = True

    def exit(self) -> None:
        """Restore the original root.

        Raises:
            ChrootError: If the session is no longer active or the
                original root could not be restored
        """
        if not self.active:
            raise ChrootError(f"chroot session for {self.path} is not active")
        try:
            os.fchdir(self.root_fd)
            os.chroot(".")
        except OSError as error:
            raise ChrootError(f"failed to leave chroot {self.path}: {error}") from error
        finally:
            os.close(self.root_fd)
            self.active = False
            self.registry._release(self)
        log.debug(f"Left chroot {self.path}")

    def __enter__(self) -> ChrootSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.exit()
        return False


class ChrootRegistry:
    """Tracks the single chroot session allowed per process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Optional[ChrootSession] = None

    @property
    def active(self) -> Optional[ChrootSession]:
        return self._active

    def enter(self, path: Union[str, Path]) -> ChrootSession:
        """Re-root the process at ``path`` and return the session.

        Raises:
            ChrootError: If a session is already active or chroot fails
        """
        path = Path(path)
        with self._lock:
            if self._active is not None:
                raise ChrootError(
                    f"already in chroot {self._active.path}, refusing to enter {path}"
                )
            root_fd = os.open("/", os.O_RDONLY)
            try:
                os.chroot(path)
            except OSError as error:
                os.close(root_fd)
                raise ChrootError(f"failed to chroot into {path}: {error}") from error
            try:
                os.chdir("/")
            except OSError as error:
                try:
                    os.fchdir(root_fd)
                    os.chroot(".")
                finally:
                    os.close(root_fd)
                raise ChrootError(f"failed to chroot into {path}: {error}") from error
            self._active = ChrootSession(self, path, root_fd)
        log.debug(f"Entered chroot {path}")
        return self._active

    def _release(self, session: ChrootSession) -> None:
        with self._lock:
            if self._active is session:
                self._active = None


registry = ChrootRegistry()
