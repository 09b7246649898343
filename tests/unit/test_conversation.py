"""
Unit tests for the PotionPlay conversation loop controller.
"""

import pytest

from potionplay.conversation import ConversationLoopController
from potionplay.types import ConversationTurn, Speaker
from tests.fixtures.mock_relay import MockResponder


class TestStart:
    """Tests for start()."""

    @pytest.mark.asyncio
    async def test_start_enters_conversation_and_speaks(self, conversation, state, player):
        outcome = await conversation.start("A mandrake root, freshly pulled!")

        assert state.state.in_conversation
        assert conversation.history == []
        assert outcome is not None and outcome.ended_naturally
        assert len(player.played) == 1

    @pytest.mark.asyncio
    async def test_start_without_speaking(self, conversation, state, player):
        assert await conversation.start("Already said", speak=False) is None
        assert state.state.in_conversation
        assert player.played == []

    @pytest.mark.asyncio
    async def test_restart_clears_history(self, conversation):
        await conversation.start(speak=False)
        await conversation.handle_user_input("hello")
        await conversation.start(speak=False)
        assert conversation.history == []


class TestHandleUserInput:
    """Tests for handle_user_input()."""

    @pytest.mark.asyncio
    async def test_round_trip_appends_two_turns(self, conversation, responder, player):
        await conversation.start(speak=False)

        reply = await conversation.handle_user_input("hello")

        assert reply.success
        assert conversation.history == [
            ConversationTurn(Speaker.USER, "hello"),
            ConversationTurn(Speaker.AI, "Indeed, young apprentice."),
        ]
        assert conversation.history_lines() == ["User: hello", "AI: Indeed, young apprentice."]
        assert player.played  # reply spoken

    @pytest.mark.asyncio
    async def test_prior_history_sent(self, dispatcher, state):
        responder = MockResponder(replies=["First.", "Second."])
        conversation = ConversationLoopController(responder, dispatcher, state)
        await conversation.start(speak=False)

        await conversation.handle_user_input("one")
        await conversation.handle_user_input("two")

        assert responder.requests == [
            ("one", []),
            ("two", ["User: one", "AI: First."]),
        ]
        assert len(conversation.history) == 4

    @pytest.mark.asyncio
    async def test_failed_reply_leaves_history(self, dispatcher, state, player):
        conversation = ConversationLoopController(MockResponder(fail=True), dispatcher, state)
        await conversation.start(speak=False)

        reply = await conversation.handle_user_input("hello")

        assert not reply.success
        assert conversation.history == []
        assert player.played == []

    @pytest.mark.asyncio
    async def test_blank_input_ignored(self, conversation, responder):
        await conversation.start(speak=False)
        assert await conversation.handle_user_input("   ") is None
        assert responder.requests == []

    @pytest.mark.asyncio
    async def test_outside_conversation_ignored(self, conversation, responder):
        assert await conversation.handle_user_input("hello") is None
        assert responder.requests == []


class TestEnd:
    """Tests for end()."""

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, conversation, state):
        await conversation.start(speak=False)
        await conversation.handle_user_input("hello")

        conversation.end()
        first = state.state
        conversation.end()

        assert state.state == first
        assert not state.state.in_conversation
        assert conversation.history == []
        assert conversation.current_reply is None
