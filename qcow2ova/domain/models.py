"""Domain model for qcow2 to OVA conversions.

Type-safe objects for the job description and for the host resources the
pipeline acquires while it runs (loop bindings, mount entries).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Union


GIB = 1024**3


# ==============================================================================
# Distribution Domain
# ==============================================================================


class Distro(Enum):
    """Guest distributions the pipeline knows how to package."""

    RHEL = "rhel"
    CENTOS = "centos"
    COREOS = "coreos"

    @classmethod
    def from_name(cls, name: str) -> Distro:
        """Parse a distro name case-insensitively.

        Raises:
            ValueError: If the name is not a supported distro
        """
        try:
            return cls(name.strip().lower())
        except ValueError:
            supported = ", ".join(d.value for d in cls)
            raise ValueError(
                f"unsupported distro '{name}', expected one of [{supported}]"
            ) from None

    @property
    def requires_customization(self) -> bool:
        """Container-optimized images boot as shipped."""
        return self is not Distro.COREOS

    @property
    def os_id(self) -> str:
        """Numeric guest OS identifier embedded in the OVF descriptor."""
        return "80" if self is Distro.COREOS else "79"

    @property
    def os_type(self) -> str:
        return "coreos" if self is Distro.COREOS else "rhel"


# ==============================================================================
# Filesystem Domain
# ==============================================================================


class FSType(Enum):
    """Filesystem types found on guest root partitions."""

    EXT2 = "ext2"
    EXT3 = "ext3"
    EXT4 = "ext4"
    XFS = "xfs"
    BTRFS = "btrfs"
    UNKNOWN = "unknown"

    @classmethod
    def from_probe(cls, value: str) -> FSType:
        """Map blkid TYPE output to a known filesystem, or UNKNOWN."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_ext(self) -> bool:
        return self in (FSType.EXT2, FSType.EXT3, FSType.EXT4)


# ==============================================================================
# Job Domain
# ==============================================================================


@dataclass(frozen=True)
class ConversionJob:
    """Everything the pipeline needs to turn one qcow2 source into an OVA.

    Created by the CLI; the working directory is created fresh by the
    pipeline and removed when the job ends, whatever the outcome.
    """

    image_name: str
    source: str  # local path or http(s) URL
    distro: Distro
    image_size_gib: int
    target_disk_size_gib: int
    temp_dir: Path
    output_dir: Path
    rhn_user: str | None = None
    rhn_password: str | None = field(default=None, repr=False)
    root_password: str | None = field(default=None, repr=False)
    skip_checks: tuple[str, ...] = ()
    expected_sha256: str | None = None
    write_files: tuple[Path, ...] = ()
    write_to_dir: str = "/root"
    prep_template: str | None = field(default=None, repr=False)
    fetch_timeout: float | None = None

    @property
    def ova_name(self) -> str:
        return f"{self.image_name}.ova"

    @property
    def output_path(self) -> Path:
        """Final artifact location the user asked for."""
        return self.output_dir / f"{self.image_name}.ova.gz"


# ==============================================================================
# Host Resource Domain
# ==============================================================================


@dataclass(frozen=True)
class LoopBinding:
    """A regular file attached to a loop block device.

    Owned by the job that created it and released before the job completes.
    """

    backing_file: Path
    device: str  # e.g., "/dev/loop3"
    partition_index: int | None = None

    @property
    def partition_device(self) -> str:
        """Device node of the data partition (e.g., /dev/loop3p2)."""
        if self.partition_index is None:
            raise ValueError(f"partition of {self.device} has not been discovered")
        return f"{self.device}p{self.partition_index}"

    def with_partition(self, index: int) -> LoopBinding:
        return dataclasses.replace(self, partition_index=index)


@dataclass(frozen=True)
class MountEntry:
    """One mount pushed onto the guest mount stack."""

    source: str
    target: Path
    options: str
    index: int


# ==============================================================================
# Packaging Domain
# ==============================================================================


@dataclass(frozen=True)
class OVASpec:
    """Values substituted into the OVF descriptor. Immutable once computed."""

    image_name: str
    volume_name: str
    src_volume_size: int  # bytes actually occupied by the raw disk
    target_disk_size: int  # bytes, GiB * 2**30
    tool_version: str
    os_id: str


# ==============================================================================
# Preflight Domain
# ==============================================================================


Hint = Union[str, Callable[[], str]]


@dataclass(frozen=True)
class ValidationRule:
    """A named read-only preflight check with a remediation hint.

    ``check`` raises on failure; its exception becomes the failure cause.
    ``hint`` may be a callable for rules whose advice depends on what failed.
    """

    name: str
    check: Callable[[], None]
    hint: Hint = ""

    def resolve_hint(self) -> str:
        return self.hint() if callable(self.hint) else self.hint


# ==============================================================================
# Guest Customizer State
# ==============================================================================


class GuestState(Enum):
    """Progress of the guest customizer; FAILED is reachable from any step."""

    UNMOUNTED = "unmounted"
    ROOT_MOUNTED = "root_mounted"
    BOOT_MOUNTED = "boot_mounted"
    HOST_BIND_MOUNTED = "host_bind_mounted"
    IN_CHROOT = "in_chroot"
    DONE = "done"
    FAILED = "failed"
