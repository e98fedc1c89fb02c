"""Require the supported OS and architecture pair."""

from __future__ import annotations

import platform

from qcow2ova.config.settings import get_setting
from qcow2ova.domain import ValidationRule


NAME = "platform"


def _supported() -> tuple[str, str]:
    return get_setting("supported_os", "linux"), get_setting("supported_arch", "ppc64le")


def check() -> None:
    supported_os, supported_arch = _supported()
    current_os = platform.system().lower()
    current_arch = platform.machine().lower()
    if current_os != supported_os or current_arch != supported_arch:
        raise OSError(f"unsupported os: {current_os}, platform: {current_arch}")


def hint() -> str:
    supported_os, supported_arch = _supported()
    return (
        f"supported only on {supported_os}/{supported_arch} platform, "
        f"please run it on RHEL/CentOS({supported_arch})"
    )


def rule() -> ValidationRule:
    return ValidationRule(NAME, check, hint)
