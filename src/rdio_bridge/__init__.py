"""Bridge WhackerLink radio calls into Rdio Scanner recordings."""

from __future__ import annotations

from .bridge import RdioBridge, RdioBridgeDependencies
from .config import (
    BridgeConfig,
    ExportConfig,
    HttpClientConfig,
    IngestConfig,
    MasterConfig,
    PeerConfig,
)
from .delivery import CallDeliverer, RdioScannerUploader
from .dispatcher import EventDispatcher
from .eventbus import ConsumerCallback, EventBus
from .exporter import CallExporter, build_artifact
from .models import (
    BridgeRuntimeState,
    CallIdentity,
    CallSession,
    ExportArtifact,
    ExporterRuntimeState,
    PeerLifecycleEvent,
    PeerState,
    ReleaseSignal,
    VoiceFrame,
)
from .peer import PeerConnection, WebSocketPeer
from .registry import SessionRegistry
from .wav import RADIO_PCM, WavFormat, encode_wav

__all__ = [
    "RADIO_PCM",
    "BridgeConfig",
    "BridgeRuntimeState",
    "CallDeliverer",
    "CallExporter",
    "CallIdentity",
    "CallSession",
    "ConsumerCallback",
    "EventBus",
    "EventDispatcher",
    "ExportArtifact",
    "ExportConfig",
    "ExporterRuntimeState",
    "HttpClientConfig",
    "IngestConfig",
    "MasterConfig",
    "PeerConfig",
    "PeerConnection",
    "PeerLifecycleEvent",
    "PeerState",
    "RdioBridge",
    "RdioBridgeDependencies",
    "RdioScannerUploader",
    "ReleaseSignal",
    "SessionRegistry",
    "VoiceFrame",
    "WavFormat",
    "WebSocketPeer",
    "build_artifact",
    "encode_wav",
]
