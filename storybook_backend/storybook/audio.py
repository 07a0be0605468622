import base64, binascii, wave
from io import BytesIO
from typing import Iterable

from .errors import ExportError

SAMPLE_RATE = 24000
CHANNELS = 1
SAMPLE_WIDTH = 2  # 16-bit signed little-endian
WAV_HEADER_SIZE = 44


def decode_pcm(pcm_b64: str) -> bytes:
    try:
        return base64.b64decode(pcm_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ExportError(f"invalid base64 PCM payload: {e}", "Los datos de audio están dañados.") from e


def pcm_bytes_to_wav(pcm: bytes) -> bytes:
    """Wrap raw PCM in a 44-byte RIFF/WAVE header; the data chunk is ``pcm`` byte for byte."""
    output = BytesIO()
    with wave.open(output, "wb") as wf:
        wf.setnchannels(CHANNELS)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(SAMPLE_RATE)
        wf.writeframes(pcm)
    return output.getvalue()


def pcm_to_wav(pcm_b64: str) -> bytes:
    return pcm_bytes_to_wav(decode_pcm(pcm_b64))


def wav_data_url(pcm_b64: str) -> str:
    return "data:audio/wav;base64," + base64.b64encode(pcm_to_wav(pcm_b64)).decode("ascii")


def concat_pcm(segments: Iterable[str]) -> bytes:
    return b"".join(decode_pcm(s) for s in segments if s)
