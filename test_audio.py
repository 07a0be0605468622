"""
Tests for the PCM to WAV encoder.
"""

import base64
import struct

import pytest

from storybook.audio import (
    WAV_HEADER_SIZE,
    concat_pcm,
    pcm_bytes_to_wav,
    pcm_to_wav,
    wav_data_url,
)
from storybook.errors import ExportError


def parse_header(wav: bytes) -> dict:
    fields = struct.unpack("<4sI4s4sIHHIIHH4sI", wav[:WAV_HEADER_SIZE])
    keys = ["riff", "chunk_size", "wave", "fmt", "fmt_size", "format", "channels",
            "sample_rate", "byte_rate", "block_align", "bits", "data", "data_size"]
    return dict(zip(keys, fields))


class TestPcmToWav:
    """Tests for the WAV container."""

    def test_header_fields(self) -> None:
        """Test every header field of a 24 kHz mono 16-bit file."""
        # Arrange
        pcm = bytes(range(200)) * 3

        # Act
        header = parse_header(pcm_bytes_to_wav(pcm))

        # Assert
        assert header["riff"] == b"RIFF"
        assert header["wave"] == b"WAVE"
        assert header["fmt"] == b"fmt "
        assert header["fmt_size"] == 16
        assert header["format"] == 1
        assert header["channels"] == 1
        assert header["sample_rate"] == 24000
        assert header["byte_rate"] == 24000 * 1 * 2
        assert header["block_align"] == 2
        assert header["bits"] == 16
        assert header["data"] == b"data"

    @pytest.mark.parametrize("length", [0, 2, 480, 48000])
    def test_sizes_follow_payload_length(self, length: int) -> None:
        """Test chunkSize == 36 + L and dataSize == L."""
        wav = pcm_bytes_to_wav(b"\x01\x02" * (length // 2))

        header = parse_header(wav)

        assert header["chunk_size"] == 36 + length
        assert header["data_size"] == length
        assert len(wav) == WAV_HEADER_SIZE + length

    def test_data_chunk_is_input_bytes(self) -> None:
        """Test decoding the data subchunk gives back the base64-decoded input."""
        raw = bytes((i * 7) % 256 for i in range(1000))

        wav = pcm_to_wav(base64.b64encode(raw).decode())

        assert wav[WAV_HEADER_SIZE:] == raw

    def test_invalid_base64_is_export_error(self) -> None:
        """Test a corrupt payload is reported, not silently encoded."""
        with pytest.raises(ExportError):
            pcm_to_wav("not base64 !!")

    def test_wav_data_url(self) -> None:
        """Test the playable data URL wraps a full WAV file."""
        raw = b"\x00\x01" * 10

        url = wav_data_url(base64.b64encode(raw).decode())

        assert url.startswith("data:audio/wav;base64,")
        decoded = base64.b64decode(url.split(",", 1)[1])
        assert decoded[:4] == b"RIFF"
        assert decoded[WAV_HEADER_SIZE:] == raw


class TestConcatPcm:
    """Tests for PCM concatenation."""

    def test_keeps_order_and_skips_empty(self) -> None:
        """Test segments are joined in order and empty ones are ignored."""
        segments = [base64.b64encode(b"ab").decode(), "", base64.b64encode(b"cd").decode()]

        assert concat_pcm(segments) == b"abcd"
