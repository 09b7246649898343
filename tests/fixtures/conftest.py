"""
Pytest Fixtures for PotionPlay Testing.

Provides shared fixtures for unit tests. tests/conftest.py re-exports
them so every test module can request them by name.

Usage:
    async def test_speak(dispatcher, player):
        outcome = await dispatcher.speak("Bubble bubble")
        assert player.played
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from potionplay.capture_pipeline import CaptureAndInterpretPipeline
from potionplay.controller import InteractionController
from potionplay.conversation import ConversationLoopController
from potionplay.interaction_state import InteractionStateMachine
from potionplay.speech_dispatcher import SpeechSynthesisDispatcher
from potionplay.wake_phrase import WakePhraseDetector
from tests.fixtures.mock_relay import MockFrameSource, MockInterpreter, MockResponder
from tests.fixtures.mock_speech import MockAudioPlayer, MockLocalSynthesizer, MockSpeechBackend
from voice.stt import QueueRecognitionBackend, SpeechCaptureAdapter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# State
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state() -> InteractionStateMachine:
    """Fresh state machine that records every snapshot it passes through."""
    machine = InteractionStateMachine()
    machine.history = []
    machine.add_observer(lambda old, event, new: machine.history.append(new))
    return machine


# =============================================================================
# Speech
# =============================================================================


@pytest.fixture
def speech_backend() -> MockSpeechBackend:
    return MockSpeechBackend()


@pytest.fixture
def player(state) -> MockAudioPlayer:
    return MockAudioPlayer(state=state)


@pytest.fixture
def local_voice() -> MockLocalSynthesizer:
    return MockLocalSynthesizer()


@pytest.fixture
def recognition() -> QueueRecognitionBackend:
    return QueueRecognitionBackend()


@pytest.fixture
def capture(recognition, state) -> SpeechCaptureAdapter:
    return SpeechCaptureAdapter(recognition, state, restart_delay_sec=0.0, error_backoff_sec=0.0)


@pytest.fixture
def dispatcher(speech_backend, player, local_voice, state, capture) -> SpeechSynthesisDispatcher:
    return SpeechSynthesisDispatcher(
        backend=speech_backend,
        player=player,
        local=local_voice,
        state=state,
        capture=capture,
    )


# =============================================================================
# Capture and Conversation
# =============================================================================


@pytest.fixture
def frame_source() -> MockFrameSource:
    return MockFrameSource()


@pytest.fixture
def interpreter() -> MockInterpreter:
    return MockInterpreter()


@pytest.fixture
def responder() -> MockResponder:
    return MockResponder()


@pytest.fixture
def pipeline(frame_source, interpreter, dispatcher, clock) -> CaptureAndInterpretPipeline:
    return CaptureAndInterpretPipeline(frame_source, interpreter, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def conversation(responder, dispatcher, state) -> ConversationLoopController:
    return ConversationLoopController(responder, dispatcher, state)


@pytest_asyncio.fixture
async def controller(
    state, capture, pipeline, dispatcher, conversation, clock
) -> AsyncGenerator[InteractionController, None]:
    """
    Controller wired entirely to mocks.

    Recognition is a QueueRecognitionBackend; feed it utterances and call
    ``await controller.wait_idle()`` to let cycles finish.
    """
    detector = WakePhraseDetector(
        state,
        phrase="abra cadabra",
        variations=["abracadabra"],
        cooldown_sec=12.0,
        clock=clock,
    )
    ctrl = InteractionController(
        state=state,
        capture=capture,
        detector=detector,
        pipeline=pipeline,
        dispatcher=dispatcher,
        conversation=conversation,
        clock=clock,
    )
    yield ctrl
    await ctrl.shutdown()
