"""
Audio fixture data for voice tests.

Synthetic PCM and WAV payloads for exercising playback without audio
hardware or recordings.

Usage:
    from tests.fixtures.audio import generate_tone, make_wav

    wav = make_wav(generate_tone(440.0, 0.1), sample_rate=RATE_24K)
"""

import io
import math
import struct
import wave

RATE_16K = 16000  # Whisper input
RATE_24K = 24000  # OpenAI PCM output

SAMPLE_INCANTATIONS = [
    "abra cadabra",
    "abracadabra",
    "Abra  Kadabra!",
]


def generate_silence(duration_sec: float, sample_rate: int = RATE_16K, channels: int = 1) -> bytes:
    """Raw 16-bit PCM silence."""
    return bytes(int(duration_sec * sample_rate * channels) * 2)


def generate_tone(
    frequency_hz: float,
    duration_sec: float,
    amplitude: float = 0.5,
    sample_rate: int = RATE_16K,
) -> bytes:
    """
    Generate a pure sine wave tone.

    Returns:
        Raw PCM audio bytes (16-bit signed, little endian)
    """
    num_samples = int(duration_sec * sample_rate)
    max_val = 32767
    return b"".join(
        struct.pack("<h", int(amplitude * max_val * math.sin(2 * math.pi * frequency_hz * i / sample_rate)))
        for i in range(num_samples)
    )


def make_wav(pcm: bytes, sample_rate: int = RATE_16K, channels: int = 1, sample_width: int = 2) -> bytes:
    """Wrap raw PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()
