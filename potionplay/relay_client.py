"""
PotionPlay Relay Client

aiohttp client for the HTTP relays that front the cloud AI providers:

    POST {base}/interpret-image  {imageData}                      -> {success, text, error?}
    POST {base}/conversation     {userInput, conversationHistory} -> {success, text, error?}
    POST {base}/tts              {text, voice?, format?}          -> {success, audioData, mimeType?, error?}

Every failure (non-2xx status, network error, timeout, malformed body,
success=false) is logged and returned as a failed result object; nothing
raises out of the public methods.

Usage:
    client = RelayClient.from_config(config.relay)
    interpretation = await client.interpret_image(image_b64)
    await client.close()
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from typing import Any, Dict, Optional, Sequence, Tuple

import aiohttp

from potionplay.config import RelayConfig
from potionplay.exceptions import ConfigurationError, PotionPlayError, RelayError
from potionplay.logging_config import get_logger
from potionplay.types import (
    MIME_TYPES,
    AudioFormat,
    ConversationReply,
    Interpretation,
    SpeechResult,
)

logger = get_logger(__name__)


__all__ = ["RelayClient", "decode_audio_payload"]


def decode_audio_payload(audio_data: str, mime_type: Optional[str] = None) -> Tuple[bytes, Optional[str]]:
    """Decode base64 audio or a data URI.

    Args:
        audio_data: Plain base64, or ``data:<mime>;base64,<payload>``
        mime_type: MIME type reported alongside the payload, if any

    Returns:
        Tuple of (audio bytes, MIME type)

    Raises:
        RelayError: The payload is empty or not valid base64
    """
    payload = (audio_data or "").strip()
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        declared = header[len("data:"):].split(";base64")[0]
        if declared:
            mime_type = declared
    if not payload:
        raise RelayError("No audio data received")
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except (binascii.Error, ValueError) as e:
        raise RelayError(f"Malformed audio data: {e}") from e


class RelayClient:
    """
    Client for the interpretation, conversation and speech relays.

    Implements the ImageInterpreter, ConversationResponder and SpeechBackend
    protocols. The HTTP session is created lazily and reused until close().
    """

    def __init__(
        self,
        base_url: str,
        interpret_path: str = "/interpret-image",
        conversation_path: str = "/conversation",
        tts_path: str = "/tts",
        timeout_sec: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.interpret_path = interpret_path
        self.conversation_path = conversation_path
        self.tts_path = tts_path
        self.timeout_sec = timeout_sec
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: RelayConfig) -> "RelayClient":
        return cls(
            base_url=config.base_url,
            interpret_path=config.interpret_path,
            conversation_path=config.conversation_path,
            tts_path=config.tts_path,
            timeout_sec=config.request_timeout_sec,
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Lazily create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post(self, endpoint: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST JSON to a relay and return the decoded success body.

        Raises:
            ConfigurationError: The endpoint is not configured
            RelayError: Transport failure, non-2xx, malformed body, or success=false
        """
        if not self.base_url or not path:
            raise ConfigurationError(f"{endpoint} endpoint not configured", config_key=endpoint)

        url = f"{self.base_url}{path}"
        session = await self._ensure_session()

        try:
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
            ) as response:
                try:
                    body = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    body = None

                if not 200 <= response.status < 300:
                    message = None
                    if isinstance(body, dict):
                        message = body.get("error")
                    raise RelayError(
                        message or f"HTTP error! status: {response.status}",
                        endpoint=endpoint,
                        status=response.status,
                    )

        except asyncio.TimeoutError as e:
            raise RelayError(
                f"Request timed out after {self.timeout_sec:.0f}s", endpoint=endpoint
            ) from e
        except aiohttp.ClientError as e:
            raise RelayError(f"Network error: {e}", endpoint=endpoint) from e

        if not isinstance(body, dict):
            raise RelayError("Malformed response body", endpoint=endpoint, status=response.status)
        if not body.get("success", False):
            raise RelayError(
                body.get("error") or f"{endpoint} request failed",
                endpoint=endpoint,
                status=response.status,
            )
        return body

    # =========================================================================
    # ImageInterpreter
    # =========================================================================

    async def interpret_image(self, image_b64: str) -> Interpretation:
        """Submit a base64 JPEG for a themed interpretation."""
        try:
            body = await self._post("interpret-image", self.interpret_path, {"imageData": image_b64})
        except PotionPlayError as e:
            logger.error(f"Error interpreting image: {e.message}")
            return Interpretation(success=False, error=e.message)

        return Interpretation(text=str(body.get("text") or ""), success=True)

    # =========================================================================
    # ConversationResponder
    # =========================================================================

    async def converse(self, user_input: str, history: Sequence[str]) -> ConversationReply:
        """Ask the conversational relay for the next wizard reply."""
        payload = {"userInput": user_input, "conversationHistory": list(history)}
        try:
            body = await self._post("conversation", self.conversation_path, payload)
        except PotionPlayError as e:
            logger.error(f"Error in conversation: {e.message}")
            return ConversationReply(success=False, error=e.message)

        return ConversationReply(text=str(body.get("text") or ""), success=True)

    # =========================================================================
    # SpeechBackend
    # =========================================================================

    async def synthesize(
        self,
        text: str,
        voice: Optional[str] = None,
        audio_format: AudioFormat = "wav",
    ) -> SpeechResult:
        """Request speech audio for one voice (or the relay's default)."""
        payload: Dict[str, Any] = {"text": text, "format": audio_format}
        if voice:
            payload["voice"] = voice

        try:
            body = await self._post("tts", self.tts_path, payload)
            audio, mime_type = decode_audio_payload(
                str(body.get("audioData") or ""), body.get("mimeType")
            )
        except PotionPlayError as e:
            label = f" ({voice})" if voice else ""
            logger.warning(f"Speech synthesis failed{label}: {e.message}")
            return SpeechResult.failure(text, e.message, voice=voice)

        return SpeechResult(
            text=text,
            voice_candidates=[voice] if voice else [],
            chosen_voice=voice,
            audio_bytes=audio,
            mime_type=mime_type or MIME_TYPES[audio_format],
            success=True,
        )
