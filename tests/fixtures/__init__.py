"""
PotionPlay Test Fixtures Package.

Mock implementations of the interaction collaborators, so flows run
without a webcam, microphone, speakers or network.

Available fixtures:
- MockFrameSource: Simulates the webcam
- MockInterpreter: Simulates the image interpretation relay
- MockResponder: Simulates the conversation relay
- MockSpeechBackend: Simulates remote text-to-speech, per-voice failures
- MockAudioPlayer: Simulates audio output, records the phase at playback
- MockLocalSynthesizer: Simulates the local fallback voice
"""

from tests.fixtures.mock_relay import MockFrameSource, MockInterpreter, MockResponder
from tests.fixtures.mock_speech import MockAudioPlayer, MockLocalSynthesizer, MockSpeechBackend

__all__ = [
    "MockFrameSource",
    "MockInterpreter",
    "MockResponder",
    "MockSpeechBackend",
    "MockAudioPlayer",
    "MockLocalSynthesizer",
]
