"""OVA packaging.

The archive holds exactly three members, in this order:

    <name>.ovf    OVF descriptor (mode 0600)
    <name>.meta   volume metadata (mode 0600)
    disk.raw      the grown raw disk, with its real size, mode and mtime
"""

from __future__ import annotations

import io
import os
import tarfile
from pathlib import Path

from qcow2ova.__version__ import __version__
from qcow2ova.config.settings import get_setting
from qcow2ova.domain import GIB, Distro, OVASpec
from qcow2ova.logging import LoggerFactory
from qcow2ova.ova.templates import meta_template, ovf_template
from qcow2ova.storage.exceptions import PackagingError


log = LoggerFactory.for_ova()

VOL_NAME = "disk"
VOL_NAME_RAW = f"{VOL_NAME}.raw"


def build_spec(
    image_name: str,
    volume_name: str,
    src_volume_size: int,
    target_disk_size_gib: int,
    distro: Distro,
) -> OVASpec:
    return OVASpec(
        image_name=image_name,
        volume_name=volume_name,
        src_volume_size=src_volume_size,
        target_disk_size=target_disk_size_gib * GIB,
        tool_version=__version__,
        os_id=distro.os_id,
    )


def render(
    image_name: str,
    volume_name: str,
    src_volume_size: int,
    target_disk_size_gib: int,
    distro: Distro = Distro.RHEL,
) -> str:
    """Render the OVF descriptor.

    Args:
        image_name: Name shown for the virtual system
        volume_name: File name of the disk inside the archive
        src_volume_size: Bytes the raw disk occupies in the archive
        target_disk_size_gib: Capacity of the deployed disk in GiB
        distro: Selects the guest OS identifier
    """
    spec = build_spec(
        image_name, volume_name, src_volume_size, target_disk_size_gib, distro
    )
    return ovf_template.render(
        image_name=spec.image_name,
        volume_name=spec.volume_name,
        src_volume_size=spec.src_volume_size,
        target_disk_size=spec.target_disk_size,
        tool_version=spec.tool_version,
        os_id=spec.os_id,
        os_description=distro.os_type.upper(),
        architecture=get_setting("supported_arch", "ppc64le"),
    )


def render_meta(image_name: str, distro: Distro = Distro.RHEL) -> str:
    """Render the key-value volume metadata."""
    return meta_template.render(
        image_name=image_name,
        os_type=distro.os_type,
        architecture=get_setting("supported_arch", "ppc64le"),
    )


def _add_text(tar: tarfile.TarFile, name: str, body: str) -> None:
    data = body.encode("utf-8")
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mode = 0o600
    tar.addfile(info, io.BytesIO(data))


def create_tar_archive(
    directory: Path,
    target: Path,
    target_disk_size_gib: int,
    distro: Distro = Distro.RHEL,
) -> Path:
    """Bundle ``directory/disk.raw`` with its descriptors into ``target``.

    Raises:
        FileNotFoundError: If the raw disk is missing, as raised by stat
        PackagingError: If the archive could not be written
    """
    directory, target = Path(directory), Path(target)
    raw = directory / VOL_NAME_RAW
    stat = os.stat(raw)

    image_name = target.name
    stem = target.stem
    ovf = render(image_name, VOL_NAME_RAW, stat.st_size, target_disk_size_gib, distro)
    meta = render_meta(image_name, distro)

    log.info(f"Packaging {raw} ({stat.st_size} bytes) into {target}")
    try:
        with tarfile.open(target, "w", format=tarfile.PAX_FORMAT) as tar:
            _add_text(tar, f"{stem}.ovf", ovf)
            _add_text(tar, f"{stem}.meta", meta)

            info = tarfile.TarInfo(name=VOL_NAME_RAW)
            info.size = stat.st_size
            info.mode = stat.st_mode & 0o7777
            info.mtime = stat.st_mtime
            with open(raw, "rb") as handle:
                tar.addfile(info, handle)
    except (OSError, tarfile.TarError) as error:
        target.unlink(missing_ok=True)
        raise PackagingError(f"could not write the archive {target}: {error}") from error
    return target
