"""Require the external tools the pipeline shells out to."""

from __future__ import annotations

import shutil
from typing import Optional

from qcow2ova.domain import ValidationRule
from qcow2ova.logging import LoggerFactory


log = LoggerFactory.for_validate()

NAME = "tools"

# tool -> install hint
COMMANDS = {
    "qemu-img": "yum install qemu-img -y",
    "growpart": "yum install cloud-utils-growpart -y",
    "losetup": "yum install util-linux -y",
    "partprobe": "yum install parted -y",
    "fdisk": "yum install util-linux -y",
    "blkid": "yum install util-linux -y",
    "mount": "yum install util-linux -y",
    "umount": "yum install util-linux -y",
}
BTRFS_COMMANDS = {"btrfs": "yum install btrfs-progs -y"}


class ToolsCheck:
    """Looks every tool up on PATH and remembers the first missing one."""

    def __init__(self, with_btrfs: bool = False):
        self.commands = dict(COMMANDS)
        if with_btrfs:
            self.commands.update(BTRFS_COMMANDS)
        self.failed_command: Optional[str] = None

    def check(self) -> None:
        self.failed_command = None
        for command in self.commands:
            path = shutil.which(command)
            if path is None:
                self.failed_command = command
                raise FileNotFoundError(f"{command} not found in PATH")
            log.info(f"{command} found at {path}")

    def hint(self) -> str:
        if self.failed_command:
            return self.commands[self.failed_command]
        return ""


def rule(with_btrfs: bool = False) -> ValidationRule:
    tools = ToolsCheck(with_btrfs)
    return ValidationRule(NAME, tools.check, tools.hint)
