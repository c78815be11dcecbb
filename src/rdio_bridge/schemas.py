"""Pydantic schemas for WhackerLink peer packets."""

from __future__ import annotations

import base64
import json
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import PacketDecodeError
from .models import CallIdentity, ReleaseSignal, VoiceFrame


class PacketType(IntEnum):
    """Packet type discriminators carried in the ``type`` field of each envelope."""

    UNKNOWN = -1
    AUDIO_DATA = 0x01
    GRP_AFF_REQ = 0x02
    GRP_AFF_RSP = 0x03
    GRP_VCH_RLS = 0x06


class PacketEnvelope(BaseModel):
    """Outer JSON frame exchanged with the master."""

    model_config = ConfigDict(extra="ignore")

    type: int = Field(description="Numeric packet type discriminator.")
    data: dict[str, Any] = Field(default_factory=dict, description="Packet body.")


class VoiceChannelEntry(BaseModel):
    """Voice channel grant attached to an audio packet."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    src_id: str = Field(alias="SrcId", description="Transmitting radio id.")
    dst_id: str = Field(alias="DstId", description="Destination talkgroup id.")
    frequency: str = Field(default="", alias="Frequency", description="Channel label.")

    @field_validator("src_id", "dst_id", "frequency", mode="before")
    @classmethod
    def _coerce_str(cls, value: object) -> object:
        if isinstance(value, int | float):
            return str(value)
        return value


class AudioPacket(BaseModel):
    """Audio payload for one voice channel."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    data: bytes = Field(alias="Data", description="Base64-encoded PCM samples.")
    voice_channel: VoiceChannelEntry = Field(alias="VoiceChannel")

    @field_validator("data", mode="before")
    @classmethod
    def _decode_base64(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except ValueError as exc:
                raise ValueError("Data is not valid base64") from exc
        if isinstance(value, list):
            # Some serializers emit byte arrays as integer lists.
            return bytes(value)
        return value

    def to_frame(self) -> VoiceFrame:
        """Convert the packet to a domain voice frame."""
        return VoiceFrame(
            identity=CallIdentity(self.voice_channel.src_id, self.voice_channel.dst_id),
            payload=self.data,
            channel=self.voice_channel.frequency,
        )


class ChannelReleasePacket(BaseModel):
    """GRP_VCH_RLS body announcing that a voice channel was torn down."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    src_id: str = Field(alias="SrcId")
    dst_id: str = Field(alias="DstId")
    channel: str = Field(default="", alias="Channel")

    @field_validator("src_id", "dst_id", "channel", mode="before")
    @classmethod
    def _coerce_str(cls, value: object) -> object:
        if isinstance(value, int | float):
            return str(value)
        return value

    def to_signal(self) -> ReleaseSignal:
        """Convert the packet to a domain release signal."""
        return ReleaseSignal(identity=CallIdentity(self.src_id, self.dst_id), channel=self.channel)


class AffiliationRequest(BaseModel):
    """GRP_AFF_REQ body affiliating a radio id with a talkgroup."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    src_id: str = Field(alias="SrcId")
    dst_id: str = Field(alias="DstId")

    def encode(self) -> str:
        """Return the JSON text frame for this request."""
        return json.dumps(
            {"type": int(PacketType.GRP_AFF_REQ), "data": self.model_dump(by_alias=True)}
        )


def decode_packet(raw: str | bytes) -> VoiceFrame | ReleaseSignal | None:
    """Parse a text frame from the master into a domain event.

    Returns ``None`` for packet types the bridge does not consume.

    Raises:
        PacketDecodeError: If the frame is not a well-formed envelope or body.

    """
    try:
        envelope = PacketEnvelope.model_validate_json(raw)
    except ValidationError as exc:
        raise PacketDecodeError(f"Malformed packet envelope: {exc}") from exc

    try:
        if envelope.type == PacketType.AUDIO_DATA:
            return AudioPacket.model_validate(envelope.data).to_frame()
        if envelope.type == PacketType.GRP_VCH_RLS:
            return ChannelReleasePacket.model_validate(envelope.data).to_signal()
    except ValidationError as exc:
        raise PacketDecodeError(f"Malformed packet type {envelope.type}: {exc}") from exc
    return None
