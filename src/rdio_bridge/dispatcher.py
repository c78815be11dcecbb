"""Routes peer events into the session registry and export queue."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from .errors import PeerConnectionError
from .eventbus import (
    TOPIC_PEER_CLOSE,
    TOPIC_PEER_OPEN,
    TOPIC_PEER_RECONNECTING,
    TOPIC_RELEASE,
    TOPIC_VOICE,
    EventBus,
)
from .models import CallSession, PeerLifecycleEvent, ReleaseSignal, VoiceFrame
from .registry import SessionRegistry
from .schemas import AffiliationRequest
from .telemetry import NullTelemetrySink, TelemetrySink, UnknownReleaseEvent

logger = logging.getLogger(__name__)


class SessionSubmitter(Protocol):
    """Accepts finalized sessions for export without blocking the caller."""

    def submit(self, session: CallSession) -> bool:  # pragma: no cover - protocol
        """Queue *session* for export."""
        ...


class MessageSender(Protocol):
    """Outbound signalling half of the peer connection."""

    async def send(self, message: str) -> None:  # pragma: no cover - protocol
        """Send *message* to the master."""
        ...


class EventDispatcher:
    """Consumes peer events one at a time and drives call session state.

    Voice frames are appended to the registry. A channel release finalizes the
    matching session and hands it to the export queue; the export itself runs
    elsewhere so the next event is processed immediately. Lifecycle events are
    logged and never touch the registry.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        exporter: SessionSubmitter,
        sender: MessageSender,
        *,
        talkgroups: Sequence[str] = (),
        radio_id: str = "1",
        telemetry: TelemetrySink | None = None,
    ) -> None:
        """Wire the dispatcher to its collaborators and affiliation settings."""
        self._registry = registry
        self._exporter = exporter
        self._sender = sender
        self._talkgroups = tuple(talkgroups)
        self._radio_id = radio_id
        self._telemetry = telemetry or NullTelemetrySink()

    async def bind(self, bus: EventBus) -> None:
        """Subscribe the dispatcher's handlers to the peer topics on *bus*."""
        await bus.subscribe(TOPIC_PEER_OPEN, self.handle_open)
        await bus.subscribe(TOPIC_PEER_CLOSE, self.handle_close)
        await bus.subscribe(TOPIC_PEER_RECONNECTING, self.handle_reconnecting)
        await bus.subscribe(TOPIC_VOICE, self.handle_voice)
        await bus.subscribe(TOPIC_RELEASE, self.handle_release)

    async def unbind(self, bus: EventBus) -> None:
        """Remove the dispatcher's subscriptions from *bus*."""
        await bus.unsubscribe(TOPIC_PEER_OPEN, self.handle_open)
        await bus.unsubscribe(TOPIC_PEER_CLOSE, self.handle_close)
        await bus.unsubscribe(TOPIC_PEER_RECONNECTING, self.handle_reconnecting)
        await bus.unsubscribe(TOPIC_VOICE, self.handle_voice)
        await bus.unsubscribe(TOPIC_RELEASE, self.handle_release)

    async def handle_open(self, event: object) -> None:
        """Affiliate the bridge with every configured talkgroup."""
        address = event.address if isinstance(event, PeerLifecycleEvent) else "master"
        logger.info("Connection to master %s successful", address)
        for talkgroup in self._talkgroups:
            request = AffiliationRequest(src_id=self._radio_id, dst_id=talkgroup)
            try:
                await self._sender.send(request.encode())
            except PeerConnectionError as exc:
                logger.warning("Failed to affiliate with talkgroup %s: %s", talkgroup, exc)
                return
            logger.debug("Sent affiliation request for talkgroup %s", talkgroup)

    async def handle_close(self, event: object) -> None:
        """Log loss of the master connection."""
        reason = event.reason if isinstance(event, PeerLifecycleEvent) else None
        if reason:
            logger.warning("Connection to master lost: %s", reason)
        else:
            logger.warning("Connection to master lost")

    async def handle_reconnecting(self, event: object) -> None:
        """Log a reconnection attempt."""
        attempt = event.attempt if isinstance(event, PeerLifecycleEvent) else 0
        logger.warning("Attempting master reconnection (attempt %d)", attempt)

    async def handle_voice(self, event: object) -> None:
        """Append a voice frame's samples to its call session."""
        if not isinstance(event, VoiceFrame):
            return
        self._registry.append(event.identity, event.payload, event.channel)
        logger.debug(
            "Voice transmission, srcId: %s, dstId: %s, channel: %s, %d byte(s)",
            event.identity.source_id,
            event.identity.destination_id,
            event.channel,
            len(event.payload),
        )

    async def handle_release(self, event: object) -> None:
        """Finalize the released call and queue it for export."""
        if not isinstance(event, ReleaseSignal):
            return
        identity = event.identity
        session = self._registry.finalize(identity)
        if session is None:
            logger.warning(
                "Received call release for unknown call: srcId: %s, dstId: %s, channel: %s",
                identity.source_id,
                identity.destination_id,
                event.channel,
            )
            self._telemetry.record_event(
                UnknownReleaseEvent(
                    source_id=identity.source_id,
                    destination_id=identity.destination_id,
                    channel=event.channel,
                )
            )
            return
        logger.info(
            "Call ended for srcId: %s, dstId: %s, channel: %s",
            identity.source_id,
            identity.destination_id,
            event.channel,
        )
        self._exporter.submit(session)
