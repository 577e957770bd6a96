"""Tests for PCM/WAV helpers."""

import io
import wave

from anchor_agent.utils.audio import parse_rate_from_mime, pcm_to_wav


def test_pcm_to_wav_header():
    pcm = b"\x01\x00" * 240
    data = pcm_to_wav(pcm, sample_rate=24000)

    assert data[:4] == b"RIFF"
    with wave.open(io.BytesIO(data)) as wav:
        assert wav.getnchannels() == 1
        assert wav.getsampwidth() == 2
        assert wav.getframerate() == 24000
        assert wav.readframes(wav.getnframes()) == pcm


def test_parse_rate_from_mime():
    assert parse_rate_from_mime("audio/L16;codec=pcm;rate=16000") == 16000
    assert parse_rate_from_mime("audio/L16") == 24000
    assert parse_rate_from_mime(None, default=8000) == 8000
    assert parse_rate_from_mime("audio/L16; rate=abc") == 24000
