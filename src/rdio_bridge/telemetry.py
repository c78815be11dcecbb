"""Telemetry hook interfaces for structured logging and metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from .models import PeerState


@dataclass(frozen=True, slots=True)
class TelemetrySignal:
    """Base class for telemetry signals."""

    emitted_at: datetime = field(init=False)

    def __post_init__(self) -> None:
        """Stamp the signal with the UTC time it was emitted."""
        object.__setattr__(self, "emitted_at", datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class TelemetryEvent(TelemetrySignal):
    """Represents a discrete telemetry event."""


@dataclass(frozen=True, slots=True)
class TelemetryMetric(TelemetrySignal):
    """Represents a telemetry metric sample."""


@dataclass(frozen=True, slots=True)
class UnknownReleaseEvent(TelemetryEvent):
    """Channel release received for a call the bridge was not tracking."""

    source_id: str
    destination_id: str
    channel: str


@dataclass(frozen=True, slots=True)
class ExportFailedEvent(TelemetryEvent):
    """Event emitted when a finished call could not be encoded or delivered."""

    source_id: str
    destination_id: str
    attempts: int
    error_type: str
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ExportDroppedEvent(TelemetryEvent):
    """Event emitted when the export queue is full and a call is discarded."""

    source_id: str
    destination_id: str
    queue_depth: int


@dataclass(frozen=True, slots=True)
class PeerConnectionEvent(TelemetryEvent):
    """Lifecycle transition of the radio network peer connection."""

    state: PeerState
    attempt: int = 0


@dataclass(frozen=True, slots=True)
class ExportQueueGauge(TelemetryMetric):
    """Gauge measurement describing export queue pressure."""

    depth: int
    in_flight: int


class TelemetrySink(Protocol):
    """Protocol for emitting structured telemetry signals."""

    def record_event(self, event: TelemetryEvent) -> None:  # pragma: no cover - protocol
        """Record a structured event for diagnostics."""
        ...

    def record_metric(self, metric: TelemetryMetric) -> None:  # pragma: no cover - protocol
        """Record a metric sample."""
        ...


class NullTelemetrySink(TelemetrySink):
    """Telemetry sink that drops all signals."""

    def record_event(self, event: TelemetryEvent) -> None:
        """Drop the event without side effects."""

    def record_metric(self, metric: TelemetryMetric) -> None:
        """Drop the metric without side effects."""
