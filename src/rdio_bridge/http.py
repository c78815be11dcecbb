"""Async HTTP client abstraction tailored for Rdio Scanner uploads."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import IO, Protocol

import httpx

from .config import HttpClientConfig
from .errors import TransportError

logger = logging.getLogger(__name__)

FilePart = tuple[str, bytes | IO[bytes], str]


class AsyncHttpClientProtocol(Protocol):
    """Protocol describing the async HTTP operations required by the bridge."""

    async def post_multipart(
        self,
        url: str,
        data: Mapping[str, str],
        files: Mapping[str, FilePart],
    ) -> httpx.Response:  # pragma: no cover - protocol signature
        """Send a multipart/form-data POST request and return the HTTP response."""
        ...

    async def close(self) -> None:  # pragma: no cover - protocol signature
        """Release HTTP resources and close underlying connections."""
        ...


class RdioHttpClient(AsyncHttpClientProtocol):
    """httpx-based client that manages connection pooling for ingestion uploads."""

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the HTTP client with optional *config* and *transport* override."""
        self._config = config or HttpClientConfig()
        limits = httpx.Limits(max_connections=self._config.max_connections or None)
        self._client = httpx.AsyncClient(
            timeout=self._config.timeout,
            limits=limits,
            headers={"User-Agent": self._config.user_agent},
            transport=transport,
        )

    async def post_multipart(
        self,
        url: str,
        data: Mapping[str, str],
        files: Mapping[str, FilePart],
    ) -> httpx.Response:
        """POST *data* fields and *files* parts, raising for non-2xx responses."""
        logger.debug(
            "POST %s with %d form field(s) and %d file part(s)", url, len(data), len(files)
        )
        started = time.perf_counter()
        try:
            response = await self._client.post(url, data=dict(data), files=dict(files))
        except httpx.HTTPError as exc:
            logger.error("HTTP POST to %s failed: %s", url, exc)
            raise TransportError(str(exc)) from exc
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("HTTP POST to %s returned status %s", url, status)
            raise
        logger.debug(
            "POST %s completed in %.2f ms",
            url,
            (time.perf_counter() - started) * 1000.0,
        )
        return response

    async def close(self) -> None:
        """Close the underlying httpx.AsyncClient instance."""
        await self._client.aclose()
        logger.debug("httpx.AsyncClient closed")
