"""Typed data models for radio calls, peer events, and export artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


def _utcnow() -> datetime:
    """Return the current UTC wall-clock time."""

    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CallIdentity:
    """Identifies one logical transmission by its source unit and destination talkgroup."""

    source_id: str
    destination_id: str

    @property
    def key(self) -> str:
        """Return the ``source-destination`` form used in filenames and logs."""

        return f"{self.source_id}-{self.destination_id}"

    def __str__(self) -> str:
        return self.key


@dataclass(slots=True)
class CallSession:
    """Audio accumulated for one in-progress call.

    Owned by the session registry until finalize hands it to the exporter.
    """

    identity: CallIdentity
    channel: str
    buffer: bytearray = field(default_factory=bytearray)
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: datetime | None = None
    frame_count: int = 0

    def append(self, payload: bytes, channel: str) -> None:
        """Add *payload* to the tail of the buffer and record the latest *channel*."""
        self.buffer.extend(payload)
        self.channel = channel
        self.frame_count += 1

    @property
    def pcm(self) -> bytes:
        """Return an immutable copy of the buffered samples."""
        return bytes(self.buffer)

    def close(self, ended_at: datetime | None = None) -> None:
        """Stamp the time the call ended; later calls keep the first stamp."""
        if self.ended_at is None:
            self.ended_at = ended_at or _utcnow()


@dataclass(frozen=True, slots=True)
class VoiceFrame:
    """Chunk of PCM audio observed on a voice channel."""

    identity: CallIdentity
    payload: bytes
    channel: str


@dataclass(frozen=True, slots=True)
class ReleaseSignal:
    """Teardown notice for the voice channel carrying a call."""

    identity: CallIdentity
    channel: str


class PeerState(StrEnum):
    """Lifecycle states reported by the peer connection."""

    OPEN = "open"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True, slots=True)
class PeerLifecycleEvent:
    """Connection lifecycle transition published by a peer."""

    state: PeerState
    address: str
    attempt: int = 0
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ExportArtifact:
    """Encoded call recording plus the metadata sent to the ingestion API."""

    filename: str
    audio: bytes
    source_id: str
    destination_id: str
    frequency: str
    captured_at: datetime
    system_id: str
    system_label: str
    content_type: str = "audio/x-wav"


@dataclass(frozen=True, slots=True)
class ExporterRuntimeState:
    """Snapshot of export queue health."""

    queue_depth: int
    queue_capacity: int
    in_flight: int
    delivered: int
    failed: int
    dropped: int


@dataclass(frozen=True, slots=True)
class BridgeRuntimeState:
    """Snapshot of bridge activity for diagnostics."""

    generated_at: datetime
    connected: bool
    active_calls: tuple[CallIdentity, ...]
    exporter: ExporterRuntimeState
