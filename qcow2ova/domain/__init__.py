"""Domain models for qcow2 to OVA conversions."""

from __future__ import annotations

from .models import (
    GIB,
    ConversionJob,
    Distro,
    FSType,
    GuestState,
    LoopBinding,
    MountEntry,
    OVASpec,
    ValidationRule,
)


__all__ = [
    "GIB",
    "ConversionJob",
    "Distro",
    "FSType",
    "GuestState",
    "LoopBinding",
    "MountEntry",
    "OVASpec",
    "ValidationRule",
]
