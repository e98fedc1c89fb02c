"""Require enough free space in the working directory."""

from __future__ import annotations

import os
from pathlib import Path

from qcow2ova.config.settings import DEFAULT_DISK_SPACE_BUFFER_GIB, get_int
from qcow2ova.domain import GIB, ConversionJob, ValidationRule
from qcow2ova.logging import LoggerFactory


log = LoggerFactory.for_validate()

NAME = "diskspace"


def free_gib(path: Path) -> int:
    stat = os.statvfs(path)
    return (stat.f_bavail * stat.f_frsize) // GIB


def rule(job: ConversionJob) -> ValidationRule:
    def check() -> None:
        buffer = get_int("disk_space_buffer_gib", DEFAULT_DISK_SPACE_BUFFER_GIB)
        free = free_gib(job.temp_dir)
        need = job.image_size_gib + buffer
        log.info(f"free: {free}G, need: {need}G")
        if free < need:
            raise OSError(
                f"{job.temp_dir} does not have enough space for the conversion "
                f"need: {need} but got {free}"
            )

    return ValidationRule(NAME, check, f"make some space in the {job.temp_dir}")
