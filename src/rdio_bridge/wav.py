"""RIFF/WAVE container encoding for raw call audio.

Radio network audio arrives as headerless linear PCM. The ingestion API wants
a standalone WAV file, so the encoder prepends the canonical 44-byte header and
copies the samples through untouched.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Final

from .errors import EncodingError

_PCM_FORMAT_TAG: Final[int] = 1
_FMT_CHUNK_SIZE: Final[int] = 16
_HEADER_STRUCT: Final[struct.Struct] = struct.Struct("<4sI4s4sIHHIIHH4sI")

WAV_HEADER_SIZE: Final[int] = _HEADER_STRUCT.size
_MAX_DATA_SIZE: Final[int] = 0xFFFFFFFF - (WAV_HEADER_SIZE - 8)


@dataclass(frozen=True, slots=True)
class WavFormat:
    """Sample format written into the ``fmt `` chunk."""

    sample_rate: int = 8000
    channels: int = 1
    bits_per_sample: int = 16

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        """Bytes per sample frame across all channels."""
        return self.channels * self.bytes_per_sample

    @property
    def byte_rate(self) -> int:
        """Bytes of audio per second of playback."""
        return self.sample_rate * self.block_align


RADIO_PCM: Final[WavFormat] = WavFormat()


def encode_wav(pcm: bytes | bytearray, fmt: WavFormat = RADIO_PCM) -> bytes:
    """Wrap *pcm* samples in a RIFF/WAVE container.

    The data chunk size is the exact input length. Odd byte counts are not
    padded, so the output is always ``WAV_HEADER_SIZE + len(pcm)`` bytes.
    """
    data_size = len(pcm)
    if data_size > _MAX_DATA_SIZE:
        raise EncodingError(f"PCM buffer of {data_size} bytes exceeds the RIFF size limit")
    header = _HEADER_STRUCT.pack(
        b"RIFF",
        data_size + WAV_HEADER_SIZE - 8,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _PCM_FORMAT_TAG,
        fmt.channels,
        fmt.sample_rate,
        fmt.byte_rate,
        fmt.block_align,
        fmt.bits_per_sample,
        b"data",
        data_size,
    )
    return header + bytes(pcm)


def duration_seconds(pcm: bytes | bytearray, fmt: WavFormat = RADIO_PCM) -> float:
    """Return the playback duration of *pcm* in seconds."""
    if fmt.byte_rate <= 0:
        return 0.0
    return len(pcm) / fmt.byte_rate
