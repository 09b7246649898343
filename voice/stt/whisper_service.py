"""
PotionPlay Whisper Recognition

Microphone recognition with faster-whisper. Audio is captured with a
sounddevice InputStream; an energy threshold marks the start and end of
the utterance, which is then transcribed in a worker thread. Whisper has
no interim results, so each session yields one final transcript.

Requires the ``whisper`` extra (faster-whisper) and a working input device.
"""

from __future__ import annotations

import asyncio
import importlib.util
from typing import AsyncIterator, List, Optional

from potionplay.config import RecognitionConfig
from potionplay.exceptions import RecognitionError
from potionplay.logging_config import get_logger
from potionplay.types import TranscriptEvent

logger = get_logger(__name__)

CHUNK_SEC = 0.1


class EnergyVAD:
    """Simple voice activity detection using an RMS energy threshold."""

    def __init__(self, threshold: float = 0.01):
        self.threshold = threshold

    def is_speech(self, chunk) -> bool:
        import numpy as np
        energy = float(np.sqrt(np.mean(chunk ** 2))) if len(chunk) else 0.0
        return energy > self.threshold


class WhisperRecognitionBackend:
    """
    RecognitionBackend over a local faster-whisper model.

    The model loads on the first session.
    """

    def __init__(self, config: Optional[RecognitionConfig] = None, device: str = "auto", compute_type: str = "int8"):
        self.config = config or RecognitionConfig()
        self.device = device
        self.compute_type = compute_type
        self.language = self.config.language.split("-")[0] or None
        self._vad = EnergyVAD(self.config.energy_threshold)
        self._model = None

    @property
    def supported(self) -> bool:
        return (
            importlib.util.find_spec("faster_whisper") is not None
            and importlib.util.find_spec("sounddevice") is not None
        )

    def _ensure_loaded(self) -> None:
        """Load the Whisper model."""
        if self._model is not None:
            return
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise RecognitionError(
                "Whisper not available. Install with: pip install faster-whisper",
                kind="not-supported",
            ) from e

        logger.info(f"Loading Whisper model: {self.config.whisper_model}")
        self._model = WhisperModel(
            self.config.whisper_model,
            device=self.device,
            compute_type=self.compute_type,
        )
        logger.info("Whisper model loaded")

    def _transcribe(self, audio) -> str:
        segments, _info = self._model.transcribe(
            audio,
            language=self.language,
            beam_size=5,
            vad_filter=True,
        )
        return " ".join(segment.text.strip() for segment in segments).strip()

    async def _capture_utterance(self):
        """Record from the microphone until the speaker falls silent."""
        import numpy as np
        import sounddevice as sd

        loop = asyncio.get_running_loop()
        chunks: asyncio.Queue = asyncio.Queue()
        sample_rate = self.config.sample_rate

        def callback(indata, frames, time_info, status):
            if status:
                logger.debug(f"Audio status: {status}")
            loop.call_soon_threadsafe(chunks.put_nowait, indata[:, 0].copy())

        audio_buffer: List = []
        silent_sec = 0.0
        waited_sec = 0.0
        max_silence = self.config.silence_timeout_sec

        try:
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="float32",
                blocksize=int(sample_rate * CHUNK_SEC),
                callback=callback,
            )
        except sd.PortAudioError as e:
            raise RecognitionError(f"Microphone unavailable: {e}", kind="audio-capture") from e

        with stream:
            while True:
                chunk = await chunks.get()
                chunk_sec = len(chunk) / sample_rate

                if self._vad.is_speech(chunk):
                    audio_buffer.append(chunk)
                    silent_sec = 0.0
                elif audio_buffer:
                    audio_buffer.append(chunk)
                    silent_sec += chunk_sec
                    if silent_sec >= self.config.end_silence_sec:
                        break
                else:
                    waited_sec += chunk_sec
                    if max_silence is not None and waited_sec >= max_silence:
                        raise RecognitionError("No speech detected", kind="no-speech")
                    continue

                if sum(len(c) for c in audio_buffer) / sample_rate >= self.config.max_utterance_sec:
                    break

        return np.concatenate(audio_buffer)

    async def listen(self) -> AsyncIterator[TranscriptEvent]:
        self._ensure_loaded()
        audio = await self._capture_utterance()

        # Skip clicks and coughs
        if len(audio) < self.config.sample_rate * 0.5:
            return

        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self._transcribe, audio)
        if text:
            logger.debug(f"Transcribed: {text}")
            yield TranscriptEvent(text, is_final=True)
