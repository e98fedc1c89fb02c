"""Mount and unmount helpers for the guest filesystems.

Unmount tolerates targets that are already gone ("not mounted", "no mount
point specified"). A "target is busy" failure is retried a few times before
falling back to a lazy, forced unmount.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional, Union

from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.command_runner import CommandResult, CommandRunner, default_runner
from qcow2ova.storage.exceptions import MountError


log = LoggerFactory.for_storage()

BUSY_RETRIES = 5
BUSY_RETRY_DELAY_SECONDS = 0.5

_ALREADY_UNMOUNTED = ("not mounted", "no mount point specified")


def _already_unmounted(result: CommandResult) -> bool:
    return any(marker in result.stderr for marker in _ALREADY_UNMOUNTED)


def mount(
    source: Union[str, Path],
    target: Union[str, Path],
    options: Optional[str] = None,
    runner: Optional[CommandRunner] = None,
) -> None:
    """Mount ``source`` on ``target``.

    Raises:
        MountError: If mount exits non-zero
    """
    runner = runner or default_runner
    command = ["mount"]
    if options:
        command += ["-o", options]
    command += [str(source), str(target)]
    result = runner.run(command)
    if not result.ok:
        raise MountError(
            f"failed to mount {source} on {target}, exit code: {result.exit_code}, "
            f"stdout: {result.stdout.strip()}, stderr: {result.stderr.strip()}"
        )
    log.debug(f"Mounted {source} on {target}")


def umount(target: Union[str, Path], runner: Optional[CommandRunner] = None) -> None:
    """Unmount ``target``.

    Raises:
        MountError: If the target stays mounted
    """
    runner = runner or default_runner
    target = str(target)

    result = runner.run(["umount", target])
    if result.ok:
        log.debug(f"Unmounted {target}")
        return
    if _already_unmounted(result):
        log.debug(f"Ignoring '{result.stderr.strip()}' for {target}")
        return

    if "target is busy" in result.stderr:
        for attempt in range(1, BUSY_RETRIES + 1):
            log.debug(f"{target} is busy, unmount attempt {attempt}/{BUSY_RETRIES}")
            time.sleep(BUSY_RETRY_DELAY_SECONDS)
            retry = runner.run(["umount", target])
            if retry.ok or _already_unmounted(retry):
                return
        log.info(f"As {target} is busy, unmounting it using lazy unmount")
        result = runner.run(["umount", "-lf", target])
        if result.ok:
            return

    raise MountError(
        f"failed to unmount {target}, exit code: {result.exit_code}, "
        f"stdout: {result.stdout.strip()}, stderr: {result.stderr.strip()}"
    )
