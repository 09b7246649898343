"""
PotionPlay Speech Synthesis Dispatcher

Turns text into audible speech:

1. Synthesize remotely, either with one voice or by fanning out to every
   candidate voice concurrently and keeping the best-ranked success.
2. Suspend speech recognition, then enter the SPEAKING phase.
3. Play the audio. If synthesis failed or playback raised, speak the text
   with the local synthesizer instead.
4. Leave the SPEAKING phase, whatever happened.

Every speak() call finishes with exactly one terminal outcome (ENDED or
ERROR) and never raises, so the caller can always resume listening.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from potionplay.config import DEFAULT_VOICE_CANDIDATES, DEFAULT_VOICE_RANKING, SpeechConfig
from potionplay.exceptions import InvalidTransitionError, PlaybackError
from potionplay.interaction_state import EventKind, InteractionStateMachine, StateEvent
from potionplay.logging_config import get_logger
from potionplay.types import (
    AudioFormat,
    AudioOutput,
    LocalSynthesizer,
    PlaybackTerminal,
    SpeechBackend,
    SpeechOutcome,
    SpeechResult,
)

logger = get_logger(__name__)

ALL_FAILED_MESSAGE = "All TTS attempts failed"


def select_best_result(
    results: Sequence[SpeechResult],
    ranking: Dict[str, int],
    text: Optional[str] = None,
) -> SpeechResult:
    """
    Pick the highest-ranked successful result.

    Voices missing from the ranking rank 0; ties keep candidate order. With
    no success, the failure carries the first reported error message.
    """
    successes = [r for r in results if r.success and r.audio_bytes]
    if successes:
        return max(successes, key=lambda r: ranking.get(r.chosen_voice or "", 0))

    if text is None:
        text = results[0].text if results else ""
    first_error = next((r.error for r in results if r.error), None)
    return SpeechResult.failure(
        text,
        first_error or ALL_FAILED_MESSAGE,
        voice_candidates=[r.chosen_voice for r in results if r.chosen_voice],
    )


class SpeechSynthesisDispatcher:
    """
    Remote synthesis, playback and local fallback for one speaker.

    The capture adapter is optional; when present it is aborted before any
    audio plays so the microphone never hears the device's own voice.
    """

    def __init__(
        self,
        backend: SpeechBackend,
        player: AudioOutput,
        local: LocalSynthesizer,
        state: InteractionStateMachine,
        capture=None,
        strategy: str = "fan_out",
        voice: Optional[str] = None,
        voice_candidates: Optional[Iterable[str]] = None,
        voice_ranking: Optional[Dict[str, int]] = None,
        audio_format: AudioFormat = "wav",
    ):
        if strategy not in ("single", "fan_out"):
            raise ValueError(f"Unknown speech strategy: {strategy}")
        self.backend = backend
        self.player = player
        self.local = local
        self.state = state
        self.capture = capture
        self.strategy = strategy
        self.voice = voice
        self.voice_candidates: List[str] = list(
            DEFAULT_VOICE_CANDIDATES if voice_candidates is None else voice_candidates
        )
        self.voice_ranking = dict(DEFAULT_VOICE_RANKING if voice_ranking is None else voice_ranking)
        self.audio_format = audio_format
        self._generation = 0

    @classmethod
    def from_config(cls, config: SpeechConfig, backend, player, local, state, capture=None):
        return cls(
            backend=backend,
            player=player,
            local=local,
            state=state,
            capture=capture,
            strategy=config.strategy,
            voice=config.voice,
            voice_candidates=config.voice_candidates,
            voice_ranking=config.voice_ranking,
            audio_format=config.format,
        )

    # =========================================================================
    # Synthesis
    # =========================================================================

    async def _attempt(self, text: str, voice: Optional[str]) -> SpeechResult:
        """One backend call with any exception turned into a failed result."""
        try:
            return await self.backend.synthesize(text, voice=voice, audio_format=self.audio_format)
        except Exception as e:
            label = voice or "default voice"
            logger.warning(f"TTS failed for {label}: {e}")
            return SpeechResult.failure(text, f"TTS failed for {label}: {e}", voice=voice)

    async def fan_out(self, text: str) -> SpeechResult:
        """Request every candidate voice concurrently and keep the best success."""
        candidates = self.voice_candidates or [self.voice]
        results = await asyncio.gather(*(self._attempt(text, v) for v in candidates))

        best = select_best_result(results, self.voice_ranking, text=text)
        best.voice_candidates = list(candidates)
        succeeded = [r.chosen_voice for r in results if r.success]
        if best.success:
            logger.info(f"Selected voice {best.chosen_voice} from {succeeded}")
        else:
            logger.error(f"Speech synthesis failed for all voices: {best.error}")
        return best

    async def synthesize(self, text: str) -> SpeechResult:
        """Synthesize text with the configured strategy."""
        if self.strategy == "fan_out":
            return await self.fan_out(text)
        result = await self._attempt(text, self.voice)
        if result.success and not result.audio_bytes:
            return SpeechResult.failure(text, "No audio data received", voice=self.voice)
        return result

    # =========================================================================
    # Playback
    # =========================================================================

    async def _speak_locally(self, text: str) -> bool:
        try:
            return await self.local.speak(text)
        except Exception as e:
            logger.error(f"Local speech synthesis failed: {e}")
            return False

    async def speak(self, text: str) -> SpeechOutcome:
        """
        Speak text and return once it has finished.

        Returns:
            SpeechOutcome; ``terminal`` is ENDED when the text was voiced
            (remotely or locally) and ERROR when nothing could be played.
        """
        if not text or not text.strip():
            return SpeechOutcome(SpeechResult.failure(text or "", "No text to speak"), PlaybackTerminal.ERROR)

        generation = self._generation
        result = await self.synthesize(text)

        if generation != self._generation:
            logger.info("Speech cancelled before playback")
            return SpeechOutcome(result, PlaybackTerminal.ERROR)

        # Suspend recognition before the first sample plays
        if self.capture is not None:
            await self.capture.abort()

        try:
            self.state.apply(StateEvent(EventKind.SPEECH_STARTED))
        except InvalidTransitionError as e:
            logger.error(f"Cannot start speaking: {e.message}")
            return SpeechOutcome(result, PlaybackTerminal.ERROR)

        fallback_used = False
        terminal = PlaybackTerminal.ERROR
        try:
            played = False
            if result.success and result.audio_bytes:
                try:
                    await self.player.play(result.audio_bytes, result.mime_type)
                    played = True
                except PlaybackError as e:
                    logger.warning(f"Audio playback failed, using local voice: {e.message}")

            if not played and generation == self._generation:
                fallback_used = True
                played = await self._speak_locally(text)

            terminal = PlaybackTerminal.ENDED if played else PlaybackTerminal.ERROR
        finally:
            self.state.apply(StateEvent(EventKind.SPEECH_ENDED))

        logger.debug(f"Speech finished: {terminal.value} (fallback={fallback_used})")
        return SpeechOutcome(result, terminal, fallback_used=fallback_used)

    def cancel(self) -> None:
        """Stop remote playback and local speech; pending speech is dropped."""
        self._generation += 1
        try:
            self.player.stop()
        finally:
            self.local.cancel()
