"""External process invocation with captured output.

Every tool the pipeline shells out to (losetup, growpart, mount, qemu-img, the
guest setup script) goes through a ``CommandRunner``. The contract is uniform:
argv in, exit code plus captured stdout/stderr out. Tests substitute a fake
runner so nothing on the host is touched.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.exceptions import ToolError


log = LoggerFactory.for_command()


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs commands synchronously; no internal timeout, no retries."""

    def run(
        self, command: Sequence[str], input_text: Optional[str] = None
    ) -> CommandResult:
        """Run a command and return its result without judging the exit code.

        A binary that cannot be executed at all is reported like the shell
        does: exit code 127 with the OS error as stderr.
        """
        args = tuple(str(part) for part in command)
        log.debug(f"Running command: {' '.join(args)}")
        try:
            completed = subprocess.run(
                args,
                input=input_text,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as error:
            log.debug(f"Command could not start: {error}")
            return CommandResult(args, 127, "", str(error))
        result = CommandResult(
            args, completed.returncode, completed.stdout or "", completed.stderr or ""
        )
        level = "TRACE" if result.ok else "DEBUG"
        if not result.ok:
            log.debug(f"Command failed with code {result.exit_code}: {' '.join(args)}")
        if result.stdout:
            log.log(level, f"stdout: {result.stdout.strip()}")
        if result.stderr:
            log.log(level, f"stderr: {result.stderr.strip()}")
        return result

    def run_checked(
        self, command: Sequence[str], input_text: Optional[str] = None
    ) -> CommandResult:
        """Run a command and raise ToolError if it exits non-zero."""
        result = self.run(command, input_text=input_text)
        if not result.ok:
            raise ToolError.from_result(result)
        return result


default_runner = CommandRunner()
