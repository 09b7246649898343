"""
PotionPlay Conversation Loop Controller

Strict turn-taking between the wizard and the user. Every finalized user
utterance is a turn: it is sent with the full prior history to the
conversational endpoint and the reply is spoken. History grows only when a
reply succeeds, always as a User turn followed by an AI turn.
"""

from __future__ import annotations

from typing import List, Optional

from potionplay.interaction_state import EventKind, InteractionStateMachine, StateEvent
from potionplay.logging_config import get_logger
from potionplay.types import (
    ConversationReply,
    ConversationResponder,
    ConversationTurn,
    Speaker,
    SpeechOutcome,
)

logger = get_logger(__name__)


class ConversationLoopController:
    """Conversation mode: history, turns and teardown."""

    def __init__(self, responder: ConversationResponder, dispatcher, state: InteractionStateMachine):
        self.responder = responder
        self.dispatcher = dispatcher
        self.state = state
        self.history: List[ConversationTurn] = []
        self.current_reply: Optional[ConversationReply] = None

    @property
    def active(self) -> bool:
        return self.state.state.in_conversation

    def history_lines(self) -> List[str]:
        """History in the "User: ..." / "AI: ..." form the endpoint expects."""
        return [turn.format() for turn in self.history]

    async def start(self, opening_text: Optional[str] = None, speak: bool = True) -> Optional[SpeechOutcome]:
        """
        Enter conversation mode with an empty history.

        Args:
            opening_text: The interpretation that opens the conversation
            speak: Speak the opening text (False when it was already spoken)
        """
        self.history = []
        self.current_reply = None
        if not self.active:
            self.state.apply(StateEvent(EventKind.CONVERSATION_STARTED))
            logger.info("Conversation started")

        if speak and opening_text and opening_text.strip():
            return await self.dispatcher.speak(opening_text)
        return None

    async def handle_user_input(self, text: str) -> Optional[ConversationReply]:
        """
        Run one turn.

        Returns:
            The reply, or None for blank input or outside conversation mode
        """
        if not text or not text.strip():
            return None
        if not self.active:
            logger.debug("Ignoring user input outside conversation")
            return None

        user_input = text.strip()
        try:
            reply = await self.responder.converse(user_input, self.history_lines())
        except Exception as e:
            logger.error(f"Error handling user input: {e}")
            reply = ConversationReply(success=False, error=str(e))

        self.current_reply = reply
        if not reply.success:
            logger.warning(f"Conversation turn failed: {reply.error}")
            return reply

        # Conversation may have ended while the request was in flight
        if not self.active:
            logger.info("Conversation ended before reply arrived; discarding")
            return reply

        self.history.append(ConversationTurn(Speaker.USER, user_input))
        self.history.append(ConversationTurn(Speaker.AI, reply.text))

        if reply.text.strip():
            await self.dispatcher.speak(reply.text)
        return reply

    def end(self) -> None:
        """Leave conversation mode. Safe to call repeatedly."""
        was_active = self.active
        self.history = []
        self.current_reply = None
        if was_active:
            self.state.apply(StateEvent(EventKind.CONVERSATION_ENDED))
            logger.info("Conversation ended")
