"""
PotionPlay Wake-Phrase Detector

Scans the cumulative transcript of the current recognition session for the
incantation that starts a capture cycle. Interim recognition callbacks fire
many times per utterance, so a match only becomes a trigger when the
interaction state grants the cycle lease (no cycle in flight, cooldown
elapsed).

Supports:
- Case-insensitive, word-boundary matching: "Abra  Cadabra!" matches
- Spelling variations: "abracadabra", "abra kadabra"
"""

from __future__ import annotations

import re
import string
import time
from typing import Callable, Iterable, List, Optional

from potionplay.interaction_state import CycleLease, InteractionStateMachine
from potionplay.logging_config import get_logger
from potionplay.types import TranscriptEvent

logger = get_logger(__name__)

DEFAULT_WAKE_PHRASE = "abra cadabra"
DEFAULT_COOLDOWN_SEC = 12.0


def compile_phrase_pattern(phrase: str, variations: Iterable[str] = ()) -> re.Pattern:
    """Build one regex matching the phrase or any variation as whole words.

    Punctuation around each word is dropped ("abra cadabra!" matches the
    transcript "abra cadabra"), and the match boundaries are lookarounds,
    so words ending in punctuation still match.
    """
    alternatives: List[str] = []
    for candidate in [phrase, *variations]:
        words = [w.strip(string.punctuation) for w in candidate.lower().split()]
        words = [w for w in words if w]
        if not words:
            continue
        alternative = r"\W*\s+\W*".join(re.escape(word) for word in words)
        if alternative not in alternatives:
            alternatives.append(alternative)
    if not alternatives:
        raise ValueError("wake phrase must contain at least one word")
    return re.compile(r"(?<!\w)(?:" + "|".join(alternatives) + r")(?!\w)", re.IGNORECASE)


class WakePhraseDetector:
    """
    Detect the wake phrase and gate it through the interaction state.

    Example:
        detector = WakePhraseDetector(machine, "abra cadabra", cooldown_sec=12)
        lease = detector.evaluate(TranscriptEvent("abra cadabra"))
        if lease:
            asyncio.create_task(pipeline.run(lease))
    """

    def __init__(
        self,
        state: InteractionStateMachine,
        phrase: str = DEFAULT_WAKE_PHRASE,
        variations: Iterable[str] = (),
        cooldown_sec: float = DEFAULT_COOLDOWN_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = state
        self.phrase = phrase.lower().strip()
        self.variations = [v.lower().strip() for v in variations if v.strip()]
        self.cooldown_sec = cooldown_sec
        self._clock = clock
        self._pattern = compile_phrase_pattern(self.phrase, self.variations)

        # Diagnostics
        self.matches_seen = 0
        self.triggers_fired = 0

    def matches(self, text: str) -> bool:
        """Check whether the text contains the wake phrase."""
        if not text:
            return False
        return self._pattern.search(text) is not None

    def evaluate(self, event: TranscriptEvent, now: Optional[float] = None) -> Optional[CycleLease]:
        """
        Evaluate one transcript event.

        Args:
            event: Latest cumulative transcript for the session
            now: Monotonic timestamp (defaults to the detector clock)

        Returns:
            A cycle lease when the phrase fired and was accepted, else None.
            The caller owns the lease and must release it.
        """
        if not self.matches(event.text):
            return None

        self.matches_seen += 1
        now = self._clock() if now is None else now

        lease = self.state.try_acquire_cycle(now, self.cooldown_sec)
        if lease is None:
            return None

        self.triggers_fired += 1
        logger.info(f"Wake phrase detected: '{event.text.strip()[:60]}'")
        return lease
