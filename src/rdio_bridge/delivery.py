"""Delivery of finished call recordings to the Rdio Scanner call-upload API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

import httpx

from .config import IngestConfig
from .errors import TransportError
from .http import AsyncHttpClientProtocol, FilePart
from .models import ExportArtifact

logger = logging.getLogger(__name__)


class CallDeliverer(Protocol):
    """Protocol implemented by components that hand recordings to the ingestion API."""

    async def deliver(
        self, artifact: ExportArtifact, *, audio_path: Path | None = None
    ) -> bool:  # pragma: no cover - protocol
        """Upload *artifact*, returning ``True`` on success."""
        ...


class RdioScannerUploader(CallDeliverer):
    """Uploads call audio as a multipart form to ``/api/call-upload``.

    ``deliver`` never raises: transport faults, non-2xx responses, and local
    read failures are logged and reported as ``False``. Retries are the
    caller's concern.
    """

    def __init__(self, http: AsyncHttpClientProtocol, config: IngestConfig) -> None:
        """Bind the uploader to the shared HTTP client and ingestion settings."""
        self._http = http
        self._url = config.upload_url
        self._api_key = config.api_key

    @property
    def url(self) -> str:
        """Return the absolute upload endpoint."""
        return self._url

    async def deliver(self, artifact: ExportArtifact, *, audio_path: Path | None = None) -> bool:
        """Upload *artifact*, reading the audio from *audio_path* when it was spooled."""
        try:
            audio = artifact.audio
            if audio_path is not None:
                audio = await asyncio.to_thread(audio_path.read_bytes)
        except OSError as exc:
            logger.error("Unable to read spooled audio %s: %s", audio_path, exc)
            return False

        data = self.form_fields(artifact)
        files: Mapping[str, FilePart] = {
            "audio": (artifact.filename, audio, artifact.content_type),
        }
        try:
            response = await self._http.post_multipart(self._url, data, files)
        except TransportError as exc:
            logger.error("Error sending call %s: %s", artifact.filename, exc)
            return False
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Rdio Scanner rejected call %s with status %s",
                artifact.filename,
                exc.response.status_code,
            )
            return False
        except Exception:
            logger.exception("Unexpected error sending call %s", artifact.filename)
            return False
        logger.debug(
            "Rdio Scanner accepted call %s with status %s",
            artifact.filename,
            response.status_code,
        )
        return True

    def form_fields(self, artifact: ExportArtifact) -> dict[str, str]:
        """Return the text fields submitted alongside the audio part."""
        return {
            "audioName": artifact.filename,
            "audioType": artifact.content_type,
            "dateTime": artifact.captured_at.isoformat(),
            "key": self._api_key,
            "talkgroup": artifact.destination_id,
            "source": artifact.source_id,
            "system": artifact.system_id,
            "systemLabel": artifact.system_label,
        }
