"""Tests for the Rdio Scanner multipart uploader."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest

from rdio_bridge.config import HttpClientConfig, IngestConfig
from rdio_bridge.delivery import RdioScannerUploader
from rdio_bridge.http import FilePart, RdioHttpClient
from rdio_bridge.models import ExportArtifact
from rdio_bridge.wav import encode_wav

TEST_API_KEY = "test-api-key"
CAPTURED_AT = datetime(2025, 3, 1, 12, 30, 45, tzinfo=UTC)


def _artifact(audio: bytes | None = None) -> ExportArtifact:
    return ExportArtifact(
        filename="call_1001-2_20250301123045.wav",
        audio=encode_wav(b"\x00\x01\x02\x03") if audio is None else audio,
        source_id="1001",
        destination_id="2",
        frequency="851.0125",
        captured_at=CAPTURED_AT,
        system_id="7",
        system_label="851.0125",
    )


def _ingest() -> IngestConfig:
    return IngestConfig(
        endpoint="https://rdio.example.test/",
        api_key=TEST_API_KEY,
        system_id="7",
    )


def _uploader(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[RdioScannerUploader, RdioHttpClient]:
    http = RdioHttpClient(HttpClientConfig(), transport=httpx.MockTransport(handler))
    return RdioScannerUploader(http, _ingest()), http


@pytest.mark.asyncio
async def test_deliver_posts_multipart_form() -> None:
    """The upload targets /api/call-upload with every required field."""
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        request.read()
        captured.append(request)
        return httpx.Response(200, text="Call imported successfully.")

    uploader, http = _uploader(handler)
    try:
        assert await uploader.deliver(_artifact()) is True
    finally:
        await http.close()

    assert len(captured) == 1
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "https://rdio.example.test/api/call-upload"
    assert request.headers["content-type"].startswith("multipart/form-data")
    body = request.content
    for name, value in (
        ("audioName", "call_1001-2_20250301123045.wav"),
        ("audioType", "audio/x-wav"),
        ("dateTime", "2025-03-01T12:30:45+00:00"),
        ("key", TEST_API_KEY),
        ("talkgroup", "2"),
        ("source", "1001"),
        ("system", "7"),
        ("systemLabel", "851.0125"),
    ):
        assert f'name="{name}"'.encode() in body
        assert value.encode() in body
    assert b'name="audio"; filename="call_1001-2_20250301123045.wav"' in body
    assert b"Content-Type: audio/x-wav" in body
    assert encode_wav(b"\x00\x01\x02\x03") in body


@pytest.mark.asyncio
async def test_deliver_reports_failure_on_server_error() -> None:
    """An HTTP 500 is reported as failure without raising."""
    uploader, http = _uploader(lambda request: httpx.Response(500, text="boom"))
    try:
        assert await uploader.deliver(_artifact()) is False
    finally:
        await http.close()


@pytest.mark.asyncio
async def test_deliver_treats_redirect_as_failure() -> None:
    """Only 2xx responses count as accepted uploads."""
    uploader, http = _uploader(
        lambda request: httpx.Response(302, headers={"Location": "https://elsewhere.test/"})
    )
    try:
        assert await uploader.deliver(_artifact()) is False
    finally:
        await http.close()


@pytest.mark.asyncio
async def test_deliver_reports_failure_on_network_error() -> None:
    """Transport faults are reported as failure without raising."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    uploader, http = _uploader(handler)
    try:
        assert await uploader.deliver(_artifact()) is False
    finally:
        await http.close()


@pytest.mark.asyncio
async def test_deliver_reads_spooled_file(tmp_path: Path) -> None:
    """A spooled artifact is uploaded from disk."""
    spooled = tmp_path / "call.wav"
    spooled.write_bytes(b"RIFF-from-disk")
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.read())
        return httpx.Response(201)

    uploader, http = _uploader(handler)
    try:
        assert await uploader.deliver(_artifact(audio=b""), audio_path=spooled) is True
    finally:
        await http.close()
    assert b"RIFF-from-disk" in bodies[0]


@pytest.mark.asyncio
async def test_deliver_reports_failure_when_spool_missing(tmp_path: Path) -> None:
    """A missing spool file fails locally without contacting the API."""
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    uploader, http = _uploader(handler)
    try:
        result = await uploader.deliver(_artifact(), audio_path=tmp_path / "missing.wav")
    finally:
        await http.close()
    assert result is False
    assert calls == []


def test_upload_url_strips_trailing_slash() -> None:
    """The configured base URL is joined with the upload path once."""
    assert _ingest().upload_url == "https://rdio.example.test/api/call-upload"


class ExplodingHttpClient:
    """HTTP client whose POST fails with an error outside the transport contract."""

    def __init__(self) -> None:
        """Start with no recorded posts."""
        self.posts = 0

    async def post_multipart(
        self, url: str, data: Mapping[str, str], files: Mapping[str, FilePart]
    ) -> httpx.Response:
        """Raise an unexpected runtime error."""
        self.posts += 1
        raise RuntimeError("response state unavailable")

    async def close(self) -> None:
        """Nothing to release."""


@pytest.mark.asyncio
async def test_deliver_reports_failure_on_unexpected_error() -> None:
    """Errors outside transport and status failures still surface as ``False``."""
    http = ExplodingHttpClient()
    uploader = RdioScannerUploader(http, _ingest())

    assert await uploader.deliver(_artifact()) is False
    assert http.posts == 1


@pytest.mark.asyncio
async def test_post_multipart_returns_unread_mock_response() -> None:
    """A successful POST returns the response without touching its timing state."""
    http = RdioHttpClient(
        HttpClientConfig(), transport=httpx.MockTransport(lambda request: httpx.Response(204))
    )
    try:
        response = await http.post_multipart(
            "https://rdio.example.test/api/call-upload",
            {"key": TEST_API_KEY},
            {"audio": ("call.wav", b"RIFF", "audio/x-wav")},
        )
    finally:
        await http.close()
    assert response.status_code == 204
