"""Audio container helpers."""

from __future__ import annotations

import io
import wave

# Speech synthesis returns 16-bit little-endian mono PCM at 24 kHz (audio/L16).
PCM_SAMPLE_RATE = 24000
PCM_CHANNELS = 1
PCM_SAMPLE_WIDTH = 2
PCM_CONTENT_TYPE = "audio/L16"


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = PCM_SAMPLE_RATE,
    channels: int = PCM_CHANNELS,
    sample_width: int = PCM_SAMPLE_WIDTH,
) -> bytes:
    """Wrap raw PCM frames in a RIFF/WAVE container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def parse_rate_from_mime(mime_type: str | None, default: int = PCM_SAMPLE_RATE) -> int:
    """Read the `rate=` parameter from a MIME type such as 'audio/L16;codec=pcm;rate=24000'."""
    if not mime_type:
        return default
    for param in mime_type.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.lower() == "rate" and value.isdigit():
            return int(value)
    return default
