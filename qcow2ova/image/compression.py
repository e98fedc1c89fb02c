"""gzip compression of the finished archive and of gzipped sources."""

from __future__ import annotations

import gzip
import os
import shutil
from pathlib import Path

from qcow2ova.logging import LoggerFactory


log = LoggerFactory.for_image()

SNIFF_LENGTH = 512
CHUNK_SIZE = 1024 * 1024

# Leading byte signatures, checked in order
_SIGNATURES = (
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"QFI\xfb", "application/x-qemu-disk"),
    (b"PK\x03\x04", "application/zip"),
    (b"BZh", "application/x-bzip2"),
    (b"\xfd7zXZ\x00", "application/x-xz"),
)


def sniff_content_type(header: bytes) -> str:
    """Classify the first bytes of a file by their magic number."""
    for magic, content_type in _SIGNATURES:
        if header.startswith(magic):
            return content_type
    if len(header) >= 262 and header[257:262] == b"ustar":
        return "application/x-tar"
    return "application/octet-stream"


def is_gzip(path: Path) -> bool:
    """True if ``path`` starts with a gzip header."""
    with open(path, "rb") as handle:
        header = handle.read(SNIFF_LENGTH)
    return sniff_content_type(header) == "application/x-gzip"


def gzip_file(src: Path, dest: Path) -> Path:
    """Compress ``src`` into ``dest``, storing the base name of ``src``."""
    src, dest = Path(src), Path(dest)
    log.info(f"Compressing {src.name} to {dest}")
    with open(src, "rb") as reader, open(dest, "wb") as raw:
        with gzip.GzipFile(filename=src.name, mode="wb", fileobj=raw) as writer:
            shutil.copyfileobj(reader, writer, CHUNK_SIZE)
        raw.flush()
        os.fsync(raw.fileno())
    return dest


def gunzip_file(src: Path, dest: Path) -> Path:
    """Decompress the gzip file ``src`` into ``dest``."""
    src, dest = Path(src), Path(dest)
    log.info(f"Decompressing {src} to {dest}")
    with gzip.open(src, "rb") as reader, open(dest, "wb") as writer:
        shutil.copyfileobj(reader, writer, CHUNK_SIZE)
    return dest
