"""Tests for the WAV container encoder."""

from __future__ import annotations

import io
import struct
import wave

import pytest

from rdio_bridge.wav import RADIO_PCM, WAV_HEADER_SIZE, WavFormat, duration_seconds, encode_wav

HEADER_BYTES = 44
RIFF_OVERHEAD = 36


def _field(data: bytes, offset: int, fmt: str = "<I") -> int:
    return struct.unpack_from(fmt, data, offset)[0]


def test_header_layout_for_radio_format() -> None:
    """The header declares mono 16-bit PCM at 8 kHz with derived rates."""
    encoded = encode_wav(b"\x00\x01\x02\x03")

    assert encoded[0:4] == b"RIFF"
    assert encoded[8:12] == b"WAVE"
    assert encoded[12:16] == b"fmt "
    assert _field(encoded, 16) == 16
    assert _field(encoded, 20, "<H") == 1
    assert _field(encoded, 22, "<H") == 1
    assert _field(encoded, 24) == 8000
    assert _field(encoded, 28) == 16000
    assert _field(encoded, 32, "<H") == 2
    assert _field(encoded, 34, "<H") == 16
    assert encoded[36:40] == b"data"


def test_two_frame_scenario_sizes() -> None:
    """Four PCM bytes produce a 40-byte RIFF size and 4-byte data chunk."""
    encoded = encode_wav(bytes([0x00, 0x01, 0x02, 0x03]))

    assert _field(encoded, 4) == 40
    assert _field(encoded, 40) == 4
    assert encoded[HEADER_BYTES:] == bytes([0x00, 0x01, 0x02, 0x03])


@pytest.mark.parametrize("length", [0, 1, 2, 3, 160, 321, 8000])
def test_output_length_and_size_fields(length: int) -> None:
    """Length, RIFF size, and data size track the input length exactly."""
    pcm = bytes(index % 251 for index in range(length))
    encoded = encode_wav(pcm)

    assert WAV_HEADER_SIZE == HEADER_BYTES
    assert len(encoded) == HEADER_BYTES + length
    assert _field(encoded, 4) == length + RIFF_OVERHEAD
    assert _field(encoded, 40) == length
    assert encoded[HEADER_BYTES:] == pcm


def test_empty_buffer_produces_valid_container() -> None:
    """A zero-length call still decodes with the standard library reader."""
    with wave.open(io.BytesIO(encode_wav(b"")), "rb") as reader:
        assert reader.getnframes() == 0
        assert reader.readframes(10) == b""


def test_standard_reader_recovers_samples() -> None:
    """Decoding with :mod:`wave` returns the original PCM and parameters."""
    pcm = struct.pack("<8h", 0, 1000, -1000, 32767, -32768, 12, -12, 0)
    with wave.open(io.BytesIO(encode_wav(pcm)), "rb") as reader:
        assert reader.getnchannels() == 1
        assert reader.getsampwidth() == 2
        assert reader.getframerate() == 8000
        assert reader.getnframes() == 8
        assert reader.readframes(reader.getnframes()) == pcm


def test_custom_format_derives_rates() -> None:
    """Byte rate and block alignment follow the declared format."""
    fmt = WavFormat(sample_rate=16000, channels=2, bits_per_sample=16)
    encoded = encode_wav(b"\x00" * 8, fmt)

    assert fmt.block_align == 4
    assert fmt.byte_rate == 64000
    assert _field(encoded, 28) == 64000
    assert _field(encoded, 32, "<H") == 4


def test_duration_seconds() -> None:
    """One second of radio audio is 16000 bytes."""
    assert duration_seconds(b"\x00" * 16000) == pytest.approx(1.0)
    assert duration_seconds(b"", RADIO_PCM) == 0.0
