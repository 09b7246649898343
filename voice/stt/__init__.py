"""
PotionPlay Speech-to-Text

- SpeechCaptureAdapter: continuous listening loop bound to the interaction state
- QueueRecognitionBackend / ConsoleRecognitionBackend: in-process and typed input
- WhisperRecognitionBackend: microphone recognition with faster-whisper
"""

from .recognition import ConsoleRecognitionBackend, QueueRecognitionBackend, utterance_events
from .speech_capture import SpeechCaptureAdapter
from .whisper_service import EnergyVAD, WhisperRecognitionBackend

__all__ = [
    "SpeechCaptureAdapter",
    "QueueRecognitionBackend",
    "ConsoleRecognitionBackend",
    "utterance_events",
    "WhisperRecognitionBackend",
    "EnergyVAD",
]
