"""
PotionPlay OpenAI Speech Backend

Direct text-to-speech through the OpenAI audio API, for setups that do not
run the /tts relay. Requires the OPENAI_API_KEY environment variable.
"""

from __future__ import annotations

import os
from typing import Optional

from potionplay.exceptions import SynthesisError
from potionplay.logging_config import get_logger
from potionplay.types import MIME_TYPES, AudioFormat, SpeechResult

logger = get_logger(__name__)

DEFAULT_TTS_MODEL = "gpt-4o-mini-tts"
DEFAULT_VOICE = "alloy"


class OpenAISpeechBackend:
    """
    SpeechBackend over ``client.audio.speech.create``.

    Failures come back as failed SpeechResults, like the relay client.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_TTS_MODEL,
        default_voice: str = DEFAULT_VOICE,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model
        self.default_voice = default_voice
        self._client = None

    async def _ensure_client(self):
        """Lazily initialize the client."""
        if self._client is not None:
            return

        if not self.api_key:
            raise SynthesisError("OPENAI_API_KEY not configured.")

        from openai import AsyncOpenAI
        self._client = AsyncOpenAI(api_key=self.api_key)

    async def synthesize(
        self,
        text: str,
        voice: Optional[str] = None,
        audio_format: AudioFormat = "wav",
    ) -> SpeechResult:
        """Synthesize text with one voice."""
        from openai import OpenAIError

        chosen = voice or self.default_voice
        try:
            await self._ensure_client()
            response = await self._client.audio.speech.create(
                model=self.model,
                voice=chosen,
                input=text,
                response_format=audio_format,
            )
            audio = response.content
        except SynthesisError as e:
            logger.error(f"OpenAI speech unavailable: {e.message}")
            return SpeechResult.failure(text, e.message, voice=chosen)
        except OpenAIError as e:
            logger.warning(f"TTS failed for {chosen}: {e}")
            return SpeechResult.failure(text, f"TTS failed for {chosen}: {e}", voice=chosen)

        if not audio:
            return SpeechResult.failure(text, "No audio data received", voice=chosen)

        return SpeechResult(
            text=text,
            voice_candidates=[chosen],
            chosen_voice=chosen,
            audio_bytes=audio,
            mime_type=MIME_TYPES[audio_format],
            success=True,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
