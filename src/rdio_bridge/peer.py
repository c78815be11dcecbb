"""Peer connection to a WhackerLink master over WebSocket.

The peer owns the socket and its reconnection loop. Everything it observes is
published on an :class:`~rdio_bridge.eventbus.EventBus`: lifecycle changes on
the ``peer.open``/``peer.close``/``peer.reconnecting`` topics, decoded audio on
``peer.voice`` and channel teardown on ``peer.release``. Each inbound frame is
fully handled by its subscribers before the next frame is read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import MasterConfig, PeerConfig
from .errors import PacketDecodeError, PeerConnectionError
from .eventbus import (
    TOPIC_PEER_CLOSE,
    TOPIC_PEER_OPEN,
    TOPIC_PEER_RECONNECTING,
    TOPIC_RELEASE,
    TOPIC_VOICE,
    EventBus,
)
from .models import PeerLifecycleEvent, PeerState, ReleaseSignal, VoiceFrame
from .schemas import decode_packet
from .telemetry import NullTelemetrySink, PeerConnectionEvent, TelemetrySink

logger = logging.getLogger(__name__)

_UNAUTHENTICATED = "UNAUTH"


class PeerConnection(Protocol):
    """Capability consumed by the bridge to talk to the radio network."""

    @property
    def events(self) -> EventBus:  # pragma: no cover - protocol
        """Return the bus on which peer events are published."""
        ...

    async def run(self) -> None:  # pragma: no cover - protocol
        """Connect and keep the connection alive until :meth:`close` is called."""
        ...

    async def send(self, message: str) -> None:  # pragma: no cover - protocol
        """Send an outbound signalling message to the master."""
        ...

    async def close(self) -> None:  # pragma: no cover - protocol
        """Stop reconnecting and close the connection."""
        ...


class WebSocketPeer(PeerConnection):
    """WebSocket peer that reconnects with exponential backoff."""

    def __init__(
        self,
        master: MasterConfig,
        config: PeerConfig | None = None,
        *,
        bus: EventBus | None = None,
        telemetry: TelemetrySink | None = None,
        connector: Callable[..., Any] = connect,
    ) -> None:
        """Create a peer for *master*; nothing is opened until :meth:`run`."""
        self._master = master
        self._config = config or PeerConfig()
        self._bus = bus or EventBus()
        self._telemetry = telemetry or NullTelemetrySink()
        self._connector = connector
        self._ws: ClientConnection | None = None
        self._stopped = asyncio.Event()

    @property
    def events(self) -> EventBus:
        """Return the bus on which peer events are published."""
        return self._bus

    @property
    def uri(self) -> str:
        """Return the master WebSocket URI."""
        return f"ws://{self._master.address}:{self._master.port}{self._master.path}"

    @property
    def connected(self) -> bool:
        """Return ``True`` while a connection to the master is open."""
        return self._ws is not None

    async def run(self) -> None:
        """Connect to the master and pump inbound frames until closed."""
        backoff = self._config.initial_backoff
        attempt = 0
        while not self._stopped.is_set():
            opened = False
            reason: str | None = None
            try:
                async with self._connector(
                    self.uri,
                    additional_headers=self._handshake_headers(),
                    ping_interval=self._config.ping_interval,
                    open_timeout=self._config.open_timeout,
                ) as ws:
                    if self._stopped.is_set():
                        # close() arrived while the handshake was in progress.
                        break
                    self._ws = ws
                    opened = True
                    attempt = 0
                    backoff = self._config.initial_backoff
                    await self._publish_lifecycle(PeerState.OPEN)
                    await self._receive(ws)
            except (OSError, TimeoutError, WebSocketException) as exc:
                reason = str(exc) or exc.__class__.__name__
                logger.debug("Peer connection to %s ended: %s", self.uri, reason)
            finally:
                self._ws = None

            if opened:
                await self._publish_lifecycle(PeerState.CLOSED, reason=reason)
            if self._stopped.is_set():
                break

            attempt += 1
            await self._publish_lifecycle(PeerState.RECONNECTING, attempt=attempt, reason=reason)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=backoff)
            except TimeoutError:
                pass
            backoff = min(backoff * 2.0, self._config.max_backoff)
        logger.info("Peer connection to %s stopped", self.uri)

    async def send(self, message: str) -> None:
        """Send *message* to the master.

        Raises:
            PeerConnectionError: If no connection is open or the send fails.

        """
        ws = self._ws
        if ws is None:
            raise PeerConnectionError("Peer is not connected")
        try:
            await ws.send(message)
        except ConnectionClosed as exc:
            raise PeerConnectionError(f"Connection closed while sending: {exc}") from exc

    async def close(self) -> None:
        """Stop reconnecting and close the current connection, if any."""
        self._stopped.set()
        ws = self._ws
        if ws is not None:
            await ws.close()

    async def _receive(self, ws: ClientConnection) -> None:
        async for message in ws:
            await self.handle_message(message)

    async def handle_message(self, message: str | bytes) -> None:
        """Decode one inbound frame and publish the resulting event."""
        try:
            event = decode_packet(message)
        except PacketDecodeError as exc:
            logger.warning("Dropping malformed packet from master: %s", exc)
            return
        if isinstance(event, VoiceFrame):
            await self._bus.publish(TOPIC_VOICE, event)
        elif isinstance(event, ReleaseSignal):
            await self._bus.publish(TOPIC_RELEASE, event)

    async def _publish_lifecycle(
        self, state: PeerState, *, attempt: int = 0, reason: str | None = None
    ) -> None:
        topic = {
            PeerState.OPEN: TOPIC_PEER_OPEN,
            PeerState.CLOSED: TOPIC_PEER_CLOSE,
            PeerState.RECONNECTING: TOPIC_PEER_RECONNECTING,
        }[state]
        self._telemetry.record_event(PeerConnectionEvent(state=state, attempt=attempt))
        await self._bus.publish(
            topic,
            PeerLifecycleEvent(state=state, address=self.uri, attempt=attempt, reason=reason),
        )

    def _handshake_headers(self) -> dict[str, str]:
        if self._master.auth_key and self._master.auth_key != _UNAUTHENTICATED:
            return {"Authorization": self._master.auth_key}
        return {}
