"""
PotionPlay Audio Player

Plays synthesized speech through sounddevice. Container formats (WAV, OGG
Vorbis, MP3) are decoded with soundfile; raw 16-bit PCM
(``audio/L16;rate=24000``, ``audio/pcm``) carries its rate and channel count
in the MIME type. Anything undecodable raises PlaybackError so the
dispatcher can fall back to local synthesis.
"""

from __future__ import annotations

import asyncio
import io
from email.message import Message
from typing import Optional, Tuple

import numpy as np
import soundfile as sf

from potionplay.exceptions import PlaybackError
from potionplay.logging_config import get_logger

logger = get_logger(__name__)

PCM_MIME_TYPES = {"audio/l16", "audio/pcm"}
DEFAULT_PCM_RATE = 24000


def parse_mime_type(mime_type: Optional[str]) -> Tuple[str, dict]:
    """Split ``audio/L16;rate=24000;channels=1`` into base type and params."""
    if not mime_type:
        return "", {}
    header = Message()
    header["Content-Type"] = mime_type
    params = {key.lower(): value for key, value in header.get_params()[1:]}
    return header.get_content_type(), params


def decode_audio(audio: bytes, mime_type: Optional[str]) -> Tuple[np.ndarray, int]:
    """Decode a speech payload to float32 samples.

    Returns:
        Tuple of (samples, sample_rate); samples are shaped (frames,) for
        mono and (frames, channels) otherwise

    Raises:
        PlaybackError: Bad PCM parameters or audio soundfile cannot read
    """
    base, params = parse_mime_type(mime_type)

    if base in PCM_MIME_TYPES:
        try:
            rate = int(params.get("rate", DEFAULT_PCM_RATE))
            channels = int(params.get("channels", 1))
        except ValueError as e:
            raise PlaybackError(f"Bad PCM parameters: {e}", mime_type=mime_type) from e
        if channels < 1 or len(audio) % (2 * channels):
            raise PlaybackError("PCM payload does not match its channel count", mime_type=mime_type)
        samples = np.frombuffer(audio, dtype="<i2").astype(np.float32) / 32768.0
        if channels > 1:
            samples = samples.reshape(-1, channels)
        return samples, rate

    # soundfile sniffs the container, so a missing or generic type still works
    try:
        samples, rate = sf.read(io.BytesIO(audio), dtype="float32")
    except (RuntimeError, TypeError) as e:
        raise PlaybackError(
            f"Unsupported audio format {mime_type or 'unknown'}: {e}", mime_type=mime_type
        ) from e
    return samples, rate


class AudioPlayer:
    """
    Audio playback for synthesized speech.

    Playback blocks in a worker thread until the audio finishes, so the
    awaiting task resumes exactly once: normally on natural end, or with
    PlaybackError.
    """

    def __init__(self, device: Optional[str] = None):
        """
        Args:
            device: Audio output device name (None for default)
        """
        self.device = device
        self._sd = None
        self._loaded = False
        self._playing = False

    def _ensure_loaded(self) -> None:
        """Lazily import sounddevice, which needs PortAudio at import time."""
        if self._loaded:
            return
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise PlaybackError(f"Audio output unavailable: {e}") from e
        self._sd = sd
        self._loaded = True
        logger.info("Audio player initialized")

    @property
    def is_playing(self) -> bool:
        return self._playing

    def _play_blocking(self, samples: np.ndarray, sample_rate: int) -> None:
        self._sd.play(samples, sample_rate, device=self.device)
        self._sd.wait()

    async def play(self, audio: bytes, mime_type: Optional[str] = None) -> None:
        """
        Play audio and return when it has finished.

        Args:
            audio: Encoded audio bytes
            mime_type: MIME type of the payload

        Raises:
            PlaybackError: Decoding or device failure
        """
        if not audio:
            raise PlaybackError("Empty audio payload", mime_type=mime_type)

        self._ensure_loaded()
        samples, sample_rate = decode_audio(audio, mime_type)

        loop = asyncio.get_running_loop()
        self._playing = True
        try:
            await loop.run_in_executor(None, self._play_blocking, samples, sample_rate)
        except PlaybackError:
            raise
        except Exception as e:
            raise PlaybackError(f"Audio playback failed: {e}", mime_type=mime_type) from e
        finally:
            self._playing = False

        logger.debug(f"Audio playback complete: {len(samples)} frames at {sample_rate}Hz")

    def stop(self) -> None:
        """Stop any currently playing audio."""
        if self._sd is not None and self._playing:
            try:
                self._sd.stop()
            except Exception as e:
                logger.warning(f"Failed to stop playback: {e}")
