"""Source image acquisition.

A source reference is either an absolute http(s) URL or a local path. Either
way the image ends up as ``<dest_dir>/<basename>``. Data is written to a
hidden temporary sibling first and renamed into place only once it is
complete, so a failed or interrupted acquisition never leaves a file that
looks finished.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import aiohttp

from qcow2ova.config.settings import DEFAULT_FETCH_TIMEOUT_SECONDS, get_int
from qcow2ova.logging import LoggerFactory, operation_context
from qcow2ova.storage.exceptions import (
    ChecksumMismatchError,
    FetchTimeoutError,
    ImageIOError,
)


log = LoggerFactory.for_image()

CHUNK_SIZE = 1024 * 1024


def is_url(ref: str) -> bool:
    """True for an absolute URL with both a scheme and a host."""
    parsed = urlparse(ref)
    return bool(parsed.scheme) and bool(parsed.netloc)


def _basename(ref: str) -> str:
    if is_url(ref):
        name = Path(urlparse(ref).path).name
    else:
        name = Path(ref).name
    if not name:
        raise ImageIOError(ref, "cannot derive a file name from the source reference")
    return name


def _partial_path(dest: Path) -> Path:
    fd, name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".partial", dir=dest.parent)
    os.close(fd)
    return Path(name)


async def download(url: str, dest: Path, timeout: float) -> Path:
    """Fetch ``url`` into ``dest`` within ``timeout`` seconds.

    Raises:
        FetchTimeoutError: If the whole transfer takes longer than ``timeout``
        ImageIOError: On a non-200 response or a network failure
    """
    partial = _partial_path(dest)
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise ImageIOError(url, f"server returned status {resp.status}")
                with open(partial, "wb") as handle:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        handle.write(chunk)
                    handle.flush()
                    os.fsync(handle.fileno())
        os.replace(partial, dest)
    except asyncio.TimeoutError as error:
        partial.unlink(missing_ok=True)
        raise FetchTimeoutError(url, timeout) from error
    except aiohttp.ClientError as error:
        partial.unlink(missing_ok=True)
        raise ImageIOError(url, f"network error: {error}") from error
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    log.info(f"Downloaded {url} to {dest}")
    return dest


def copy_file(src: Path, dest: Path) -> Path:
    """Copy ``src`` to ``dest`` byte for byte and fsync the result.

    Raises:
        ImageIOError: If ``src`` is missing or is a directory
    """
    if not src.exists():
        raise ImageIOError(str(src), "no such file")
    if src.is_dir():
        raise ImageIOError(str(src), "is a directory")

    partial = _partial_path(dest)
    try:
        with open(src, "rb") as reader, open(partial, "wb") as writer:
            shutil.copyfileobj(reader, writer, CHUNK_SIZE)
            writer.flush()
            os.fsync(writer.fileno())
        os.replace(partial, dest)
    except OSError as error:
        partial.unlink(missing_ok=True)
        raise ImageIOError(str(src), f"copy failed: {error}") from error
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    log.info(f"Copied {src} to {dest}")
    return dest


def sha256sum(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(path: Path, expected: str) -> None:
    """Compare the sha256 of ``path`` with ``expected``; remove it on mismatch."""
    actual = sha256sum(path)
    if actual.lower() != expected.strip().lower():
        path.unlink(missing_ok=True)
        raise ChecksumMismatchError(str(path), expected, actual)
    log.debug(f"Checksum verified for {path}")


def acquire(
    dest_dir: Path,
    ref: str,
    timeout: Optional[float] = None,
    expected_sha256: Optional[str] = None,
) -> Path:
    """Resolve ``ref`` into a local copy under ``dest_dir``.

    Args:
        dest_dir: Existing directory to place the image in
        ref: URL or local file path
        timeout: Network budget in seconds (defaults to the configured
            fetch_timeout_seconds, 30 minutes)
        expected_sha256: Optional checksum the copy must match

    Returns:
        Path of the local copy
    """
    dest_dir = Path(dest_dir)
    dest = dest_dir / _basename(ref)
    if timeout is None:
        timeout = get_int("fetch_timeout_seconds", DEFAULT_FETCH_TIMEOUT_SECONDS)

    with operation_context("acquire", image=ref):
        if is_url(ref):
            asyncio.run(download(ref, dest, timeout))
        else:
            copy_file(Path(ref), dest)
        if expected_sha256:
            verify_checksum(dest, expected_sha256)
    return dest
