"""Configuration schemas for the Rdio Scanner bridge."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    model_validator,
)

from .errors import ConfigurationError


class MasterConfig(BaseModel):
    """Connection details for the radio network master the bridge peers with."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    address: str = Field(..., min_length=1, description="Hostname or IP of the master")
    port: int = Field(..., ge=1, le=65535, description="TCP port of the master")
    auth_key: str = Field(
        default="UNAUTH", description="Peer authentication token presented on connect"
    )
    radio_id: str = Field(
        default="1",
        min_length=1,
        description="Source radio id used for group affiliation requests",
    )
    path: str = Field(default="/client", description="WebSocket endpoint path on the master")

    @model_validator(mode="after")
    def _ensure_path_prefix(self) -> MasterConfig:
        if not self.path.startswith("/"):
            raise ValueError("path must start with '/'")
        return self


class PeerConfig(BaseModel):
    """Reconnection and keepalive tuning for the peer connection."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    initial_backoff: PositiveFloat = Field(
        default=1.0, description="Initial delay (seconds) before reconnecting"
    )
    max_backoff: PositiveFloat = Field(
        default=30.0, description="Upper bound on exponential reconnect backoff (seconds)"
    )
    ping_interval: PositiveFloat | None = Field(
        default=20.0, description="WebSocket keepalive ping interval (None disables)"
    )
    open_timeout: PositiveFloat = Field(
        default=10.0, description="Seconds to wait for the opening handshake"
    )


class IngestConfig(BaseModel):
    """Rdio Scanner ingestion API settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    endpoint: HttpUrl = Field(..., description="Base URL of the Rdio Scanner server")
    api_key: str = Field(..., min_length=1, description="Rdio Scanner API key")
    system_id: str = Field(default="1", min_length=1, description="Rdio Scanner system id")
    system_label: str | None = Field(
        default=None,
        description="Fixed systemLabel for every call (None sends the voice channel label)",
    )

    @property
    def upload_url(self) -> str:
        """Return the absolute call upload endpoint."""
        return f"{str(self.endpoint).rstrip('/')}/api/call-upload"


class HttpClientConfig(BaseModel):
    """HTTP client tuning parameters for ingestion requests."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout: PositiveFloat = Field(default=30.0, description="Per-request timeout in seconds")
    max_connections: NonNegativeInt = Field(
        default=10, description="Maximum concurrent HTTP connections"
    )
    user_agent: str = Field(default="rdio-bridge/0.1", description="User-Agent header")


class ExportConfig(BaseModel):
    """Tuning for the export queue that encodes and uploads finished calls."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    queue_maxsize: PositiveInt = Field(
        default=64, description="Maximum finished calls waiting for an export worker"
    )
    workers: PositiveInt = Field(default=2, description="Number of concurrent export workers")
    max_attempts: PositiveInt = Field(
        default=1,
        description="Delivery attempts per call before the recording is discarded (1 = no retry)",
    )
    initial_backoff: PositiveFloat = Field(
        default=2.0, description="Delay (seconds) before the first delivery retry"
    )
    max_backoff: PositiveFloat = Field(
        default=60.0, description="Upper bound on exponential delivery backoff (seconds)"
    )
    spool_dir: Path | None = Field(
        default=None,
        description="Directory where WAV files are written before upload (None keeps them in memory)",
    )
    flush_on_shutdown: bool = Field(
        default=True, description="Export calls still in progress when the bridge stops"
    )
    shutdown_timeout: PositiveFloat = Field(
        default=30.0, description="Seconds to wait for queued exports during shutdown"
    )


class BridgeConfig(BaseModel):
    """Top-level configuration wiring the peer, ingestion API, and export queue."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    master: MasterConfig
    ingest: IngestConfig
    talkgroups: tuple[str, ...] = Field(
        default=(), description="Talkgroups to affiliate with after connecting"
    )
    peer: PeerConfig = Field(default_factory=PeerConfig)
    http: HttpClientConfig = Field(default_factory=HttpClientConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    @classmethod
    def from_file(cls, path: Path) -> BridgeConfig:
        """Load configuration from the JSON document at *path*."""
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Unable to read config file {path}: {exc}") from exc
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc

    @classmethod
    def from_environment(cls, *, env: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build a configuration from environment variables.

        Recognised variables:
            - ``RDIO_MASTER_ADDRESS`` / ``RDIO_MASTER_PORT`` (required)
            - ``RDIO_MASTER_AUTH_KEY``, ``RDIO_MASTER_RADIO_ID``, ``RDIO_MASTER_PATH``
            - ``RDIO_ENDPOINT`` / ``RDIO_API_KEY`` (required)
            - ``RDIO_SYSTEM_ID``, ``RDIO_SYSTEM_LABEL``
            - ``RDIO_TALKGROUPS`` comma-separated talkgroup list
            - ``RDIO_EXPORT_WORKERS``, ``RDIO_EXPORT_MAX_ATTEMPTS``, ``RDIO_EXPORT_QUEUE_MAXSIZE``
            - ``RDIO_SPOOL_DIR`` directory for spooled WAV files
        """
        source = dict(os.environ if env is None else env)

        required = (
            "RDIO_MASTER_ADDRESS",
            "RDIO_MASTER_PORT",
            "RDIO_ENDPOINT",
            "RDIO_API_KEY",
        )
        missing = [key for key in required if not source.get(key)]
        if missing:
            raise ConfigurationError(f"Missing configuration keys: {', '.join(missing)}")

        master: dict[str, Any] = {
            "address": source["RDIO_MASTER_ADDRESS"],
            "port": source["RDIO_MASTER_PORT"],
        }
        _copy_optional(source, master, {
            "RDIO_MASTER_AUTH_KEY": "auth_key",
            "RDIO_MASTER_RADIO_ID": "radio_id",
            "RDIO_MASTER_PATH": "path",
        })
        ingest: dict[str, Any] = {
            "endpoint": source["RDIO_ENDPOINT"],
            "api_key": source["RDIO_API_KEY"],
        }
        _copy_optional(source, ingest, {
            "RDIO_SYSTEM_ID": "system_id",
            "RDIO_SYSTEM_LABEL": "system_label",
        })
        export: dict[str, Any] = {}
        _copy_optional(source, export, {
            "RDIO_EXPORT_WORKERS": "workers",
            "RDIO_EXPORT_MAX_ATTEMPTS": "max_attempts",
            "RDIO_EXPORT_QUEUE_MAXSIZE": "queue_maxsize",
            "RDIO_SPOOL_DIR": "spool_dir",
        })

        talkgroups_raw = source.get("RDIO_TALKGROUPS", "")
        talkgroups = tuple(item.strip() for item in talkgroups_raw.split(",") if item.strip())

        try:
            # Environment values are strings; lax validation coerces numeric fields.
            return cls.model_validate(
                {
                    "master": master,
                    "ingest": ingest,
                    "talkgroups": talkgroups,
                    "export": export,
                }
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid environment configuration: {exc}") from exc


def _copy_optional(
    source: Mapping[str, str], target: dict[str, Any], mapping: Mapping[str, str]
) -> None:
    for env_key, field in mapping.items():
        raw = source.get(env_key)
        if raw is not None and raw != "":
            target[field] = raw
