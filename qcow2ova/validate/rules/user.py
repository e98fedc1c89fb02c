"""Require root privileges."""

from __future__ import annotations

import os

from qcow2ova.domain import ValidationRule


NAME = "user"
HINT = "Expected root user to execute qcow2ova"


def check() -> None:
    if os.geteuid() != 0:
        raise PermissionError("non-root user is executing qcow2ova")


def rule() -> ValidationRule:
    return ValidationRule(NAME, check, HINT)
