"""
PotionPlay - Hands-Free Magic Cauldron

Point a webcam at an ingredient, say the incantation, and a wizard
describes what it sees, then keeps talking with you.

Architecture:
    - Speech capture with wake-phrase detection and cooldown
    - Capture-and-interpret cycle over HTTP relays to cloud AI providers
    - Multi-voice speech synthesis with local voice fallback
    - Explicit interaction state machine with a single in-flight cycle lease
"""

__version__ = "0.1.0"

VERSION_INFO = (0, 1, 0)

from potionplay.exceptions import PotionPlayError

from potionplay.interaction_state import (
    CycleLease,
    InteractionState,
    InteractionStateMachine,
    VoicePhase,
)

from potionplay.types import (
    ConversationTurn,
    Interpretation,
    SpeechResult,
    TranscriptEvent,
)
