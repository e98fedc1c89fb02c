"""Tests for source image acquisition."""

import asyncio
import hashlib
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import web

from qcow2ova.image.acquire import acquire, copy_file, download, is_url, verify_checksum
from qcow2ova.storage.exceptions import (
    ChecksumMismatchError,
    FetchTimeoutError,
    ImageIOError,
)


PAYLOAD = b"QFI\xfb" + bytes(range(256)) * 64


def _app(delay: float = 0.0, status: int = 200) -> web.Application:
    async def handler(request):
        if delay:
            await asyncio.sleep(delay)
        if status != 200:
            return web.Response(status=status, text="gone")
        return web.Response(body=PAYLOAD)

    app = web.Application()
    app.router.add_get("/images/disk.qcow2", handler)
    return app


class TestIsUrl:
    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("https://mirror.example.com/rhcos.qcow2.gz", True),
            ("http://10.0.0.1:8080/disk.qcow2", True),
            ("/root/CentOS-8.qcow2", False),
            ("./rhel.qcow2", False),
            ("file.qcow2", False),
            ("http:///missing-host.qcow2", False),
        ],
    )
    def test_requires_scheme_and_host(self, ref, expected):
        assert is_url(ref) is expected


class TestLocalAcquire:
    """Tests for acquiring local files."""

    def test_copy_is_byte_identical(self, tmp_path):
        src = tmp_path / "src" / "centos.qcow2"
        src.parent.mkdir()
        src.write_bytes(PAYLOAD)
        dest_dir = tmp_path / "work"
        dest_dir.mkdir()

        result = acquire(dest_dir, str(src))

        assert result == dest_dir / "centos.qcow2"
        assert result.read_bytes() == PAYLOAD
        assert sorted(p.name for p in dest_dir.iterdir()) == ["centos.qcow2"]

    def test_missing_source_writes_nothing(self, tmp_path):
        dest_dir = tmp_path / "work"
        dest_dir.mkdir()

        with pytest.raises(ImageIOError, match="no such file"):
            acquire(dest_dir, str(tmp_path / "missing.qcow2"))

        assert list(dest_dir.iterdir()) == []

    def test_directory_source_rejected(self, tmp_path):
        dest_dir = tmp_path / "work"
        dest_dir.mkdir()
        with pytest.raises(ImageIOError, match="is a directory"):
            copy_file(tmp_path, dest_dir / "x")
        assert list(dest_dir.iterdir()) == []

    def test_checksum_verified(self, tmp_path):
        src = tmp_path / "disk.qcow2"
        src.write_bytes(PAYLOAD)
        dest_dir = tmp_path / "work"
        dest_dir.mkdir()

        digest = hashlib.sha256(PAYLOAD).hexdigest()
        assert acquire(dest_dir, str(src), expected_sha256=digest.upper()).exists()

    def test_checksum_mismatch_removes_copy(self, tmp_path):
        src = tmp_path / "disk.qcow2"
        src.write_bytes(PAYLOAD)
        dest_dir = tmp_path / "work"
        dest_dir.mkdir()

        with pytest.raises(ChecksumMismatchError):
            acquire(dest_dir, str(src), expected_sha256="0" * 64)
        assert list(dest_dir.iterdir()) == []

    def test_verify_checksum(self, tmp_path):
        path = tmp_path / "x"
        path.write_bytes(b"abc")
        verify_checksum(
            path, "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
        assert path.exists()


class TestDownload:
    """Tests for the bounded network fetch."""

    @pytest.mark.asyncio
    async def test_download(self, aiohttp_server, tmp_path):
        server = await aiohttp_server(_app())
        dest = tmp_path / "disk.qcow2"

        await download(str(server.make_url("/images/disk.qcow2")), dest, timeout=10)

        assert dest.read_bytes() == PAYLOAD
        assert [p.name for p in tmp_path.iterdir()] == ["disk.qcow2"]

    @pytest.mark.asyncio
    async def test_slow_server_times_out(self, aiohttp_server, tmp_path):
        """Test that a server slower than the budget yields a timeout error."""
        server = await aiohttp_server(_app(delay=2.0))
        dest = tmp_path / "disk.qcow2"

        with pytest.raises(FetchTimeoutError) as exc_info:
            await download(str(server.make_url("/images/disk.qcow2")), dest, timeout=0.2)

        assert exc_info.value.timeout == 0.2
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_non_success_status(self, aiohttp_server, tmp_path):
        server = await aiohttp_server(_app(status=404))
        dest = tmp_path / "disk.qcow2"

        with pytest.raises(ImageIOError, match="status 404"):
            await download(str(server.make_url("/images/disk.qcow2")), dest, timeout=10)

        assert list(tmp_path.iterdir()) == []


class TestUrlAcquire:
    """Tests for acquire() with URL sources."""

    def test_dispatches_to_download(self, tmp_path):
        with patch("qcow2ova.image.acquire.download", new_callable=AsyncMock) as mock_download:
            result = acquire(tmp_path, "https://mirror.example.com/x/rhcos.qcow2.gz", timeout=5)

        assert result == tmp_path / "rhcos.qcow2.gz"
        mock_download.assert_awaited_once_with(
            "https://mirror.example.com/x/rhcos.qcow2.gz", tmp_path / "rhcos.qcow2.gz", 5
        )

    def test_default_timeout_is_thirty_minutes(self, tmp_path):
        with patch("qcow2ova.image.acquire.download", new_callable=AsyncMock) as mock_download:
            acquire(tmp_path, "https://mirror.example.com/rhcos.qcow2")
        assert mock_download.await_args.args[2] == 1800

    def test_timeout_propagates(self, tmp_path):
        with patch(
            "qcow2ova.image.acquire.download",
            new_callable=AsyncMock,
            side_effect=FetchTimeoutError("https://h/x.qcow2", 1),
        ):
            with pytest.raises(FetchTimeoutError):
                acquire(tmp_path, "https://h/x.qcow2", timeout=1)

    def test_url_without_file_name(self, tmp_path):
        with pytest.raises(ImageIOError, match="file name"):
            acquire(tmp_path, "https://mirror.example.com/")
