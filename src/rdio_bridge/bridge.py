"""Bridge facade wiring the radio peer to the Rdio Scanner ingestion API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from .config import BridgeConfig
from .delivery import CallDeliverer, RdioScannerUploader
from .dispatcher import EventDispatcher
from .exporter import CallExporter
from .http import AsyncHttpClientProtocol, RdioHttpClient
from .models import BridgeRuntimeState
from .peer import PeerConnection, WebSocketPeer
from .registry import SessionRegistry
from .telemetry import NullTelemetrySink, TelemetrySink

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RdioBridgeDependencies:
    """Optional dependency overrides for :class:`RdioBridge`."""

    http_client: AsyncHttpClientProtocol | None = None
    peer: PeerConnection | None = None
    deliverer: CallDeliverer | None = None
    registry: SessionRegistry | None = None
    telemetry: TelemetrySink | None = None


class RdioBridge:
    """Runs the peer connection, call aggregation, and export workers together."""

    def __init__(
        self,
        config: BridgeConfig,
        *,
        dependencies: RdioBridgeDependencies | None = None,
    ) -> None:
        """Build every component from *config*, honouring dependency overrides."""
        deps = dependencies or RdioBridgeDependencies()
        self._config = config
        self._telemetry = deps.telemetry or NullTelemetrySink()
        self._http_client = deps.http_client or RdioHttpClient(config.http)
        self._peer = deps.peer or WebSocketPeer(
            config.master, config.peer, telemetry=self._telemetry
        )
        deliverer = deps.deliverer or RdioScannerUploader(self._http_client, config.ingest)
        self._registry = deps.registry or SessionRegistry()
        self._exporter = CallExporter(
            deliverer, config.ingest, config.export, telemetry=self._telemetry
        )
        self._dispatcher = EventDispatcher(
            self._registry,
            self._exporter,
            self._peer,
            talkgroups=config.talkgroups,
            radio_id=config.master.radio_id,
            telemetry=self._telemetry,
        )
        self._peer_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        logger.debug("RdioBridge initialised")

    @property
    def registry(self) -> SessionRegistry:
        """Return the registry tracking in-progress calls."""
        return self._registry

    @property
    def exporter(self) -> CallExporter:
        """Return the export queue."""
        return self._exporter

    @property
    def peer_task(self) -> asyncio.Task[None] | None:
        """Return the task running the peer connection, once started."""
        return self._peer_task

    async def start(self) -> None:
        """Start export workers, bind the dispatcher, and connect to the master."""
        async with self._lock:
            if self._peer_task is not None:
                return
            self._exporter.start()
            await self._dispatcher.bind(self._peer.events)
            self._peer_task = asyncio.create_task(self._peer.run(), name="rdio-peer")
        logger.info(
            "RdioBridge started with %d talkgroup affiliation(s)", len(self._config.talkgroups)
        )

    async def shutdown(self) -> None:
        """Disconnect, export calls still in progress if configured, and release resources."""
        async with self._lock:
            peer_task, self._peer_task = self._peer_task, None
        if peer_task is None:
            await self._http_client.close()
            return
        await self._peer.close()
        try:
            await peer_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Peer connection terminated with an error")
        await self._dispatcher.unbind(self._peer.events)

        if self._config.export.flush_on_shutdown:
            pending = self._registry.drain()
            if pending:
                logger.info("Exporting %d call(s) still in progress at shutdown", len(pending))
            for session in pending:
                self._exporter.submit(session)
        else:
            abandoned = len(self._registry.drain())
            if abandoned:
                logger.warning("Discarding %d call(s) still in progress at shutdown", abandoned)

        await self._exporter.stop()
        await self._http_client.close()
        logger.info("RdioBridge shutdown complete")

    def runtime_state(self) -> BridgeRuntimeState:
        """Return a snapshot of active calls and export queue health."""
        return BridgeRuntimeState(
            generated_at=datetime.now(UTC),
            connected=bool(getattr(self._peer, "connected", False)),
            active_calls=self._registry.active_identities(),
            exporter=self._exporter.snapshot(),
        )
