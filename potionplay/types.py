"""
PotionPlay Shared Type Definitions

Data structures exchanged between the interaction components and the
protocols every external collaborator implements. Collaborators are
injected into components by constructor, so tests substitute fakes that
satisfy the same protocols.

Usage:
    from potionplay.types import TranscriptEvent, Interpretation, SpeechResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    AsyncIterator,
    List,
    Literal,
    Optional,
    Protocol,
    Sequence,
    TypeAlias,
    runtime_checkable,
)

AudioFormat: TypeAlias = Literal["mp3", "wav", "ogg"]

MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
}


# =============================================================================
# Recognition
# =============================================================================


@dataclass(frozen=True)
class TranscriptEvent:
    """One recognition callback: the cumulative transcript of the session."""
    text: str
    is_final: bool = False


# =============================================================================
# Interpretation and Conversation
# =============================================================================


@dataclass
class Interpretation:
    """Themed description of one captured frame."""
    text: str = ""
    success: bool = False
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ConversationReply:
    """Reply from the conversational endpoint."""
    text: str = ""
    success: bool = False
    error: Optional[str] = None


class Speaker(Enum):
    """Who produced a conversation turn."""
    USER = "User"
    AI = "AI"


@dataclass(frozen=True)
class ConversationTurn:
    """One utterance in the conversation history."""
    speaker: Speaker
    text: str

    def format(self) -> str:
        """Render as the history line sent to the conversational endpoint."""
        return f"{self.speaker.value}: {self.text}"


# =============================================================================
# Speech Synthesis
# =============================================================================


@dataclass
class SpeechRequest:
    """A synthesis request for one text and an ordered list of voices."""
    text: str
    voice_candidates: List[str] = field(default_factory=list)
    format: AudioFormat = "wav"


@dataclass
class SpeechResult:
    """Outcome of a synthesis request."""
    text: str
    voice_candidates: List[str] = field(default_factory=list)
    chosen_voice: Optional[str] = None
    audio_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None
    success: bool = False
    error: Optional[str] = None

    @classmethod
    def failure(
        cls,
        text: str,
        error: str,
        voice: Optional[str] = None,
        voice_candidates: Optional[Sequence[str]] = None,
    ) -> "SpeechResult":
        """Build a failed result."""
        return cls(
            text=text,
            voice_candidates=list(voice_candidates or ([voice] if voice else [])),
            chosen_voice=voice,
            success=False,
            error=error,
        )


class PlaybackTerminal(Enum):
    """Terminal event of one speech output; exactly one fires per speak()."""
    ENDED = "ended"
    ERROR = "error"


@dataclass
class SpeechOutcome:
    """What happened when a text was spoken."""
    result: SpeechResult
    terminal: PlaybackTerminal
    fallback_used: bool = False

    @property
    def ended_naturally(self) -> bool:
        return self.terminal is PlaybackTerminal.ENDED


# =============================================================================
# Protocol Definitions (Structural Typing)
# =============================================================================


@runtime_checkable
class FrameSource(Protocol):
    """Still-frame source such as a webcam."""

    async def open(self) -> None:
        """Acquire the device; raises CameraError when it cannot."""
        ...

    async def capture_jpeg(self, quality: float) -> bytes:
        """Grab the current frame encoded as JPEG."""
        ...

    def release(self) -> None:
        """Release the underlying device."""
        ...


@runtime_checkable
class ImageInterpreter(Protocol):
    """Collaborator that turns an image into descriptive text."""

    async def interpret_image(self, image_b64: str) -> Interpretation:
        ...


@runtime_checkable
class ConversationResponder(Protocol):
    """Collaborator that replies to a user utterance given prior history."""

    async def converse(self, user_input: str, history: Sequence[str]) -> ConversationReply:
        ...


@runtime_checkable
class SpeechBackend(Protocol):
    """Remote text-to-speech for one voice."""

    async def synthesize(
        self,
        text: str,
        voice: Optional[str] = None,
        audio_format: AudioFormat = "wav",
    ) -> SpeechResult:
        ...


@runtime_checkable
class AudioOutput(Protocol):
    """Plays synthesized audio; raises PlaybackError on failure."""

    async def play(self, audio: bytes, mime_type: Optional[str] = None) -> None:
        ...

    def stop(self) -> None:
        ...


@runtime_checkable
class LocalSynthesizer(Protocol):
    """On-device speech synthesis used as the last fallback."""

    async def speak(self, text: str) -> bool:
        ...

    def cancel(self) -> None:
        ...


@runtime_checkable
class RecognitionBackend(Protocol):
    """Continuous speech recognition producing one session per listen()."""

    @property
    def supported(self) -> bool:
        ...

    def listen(self) -> AsyncIterator[TranscriptEvent]:
        """Run one recognition session, yielding cumulative transcripts."""
        ...
