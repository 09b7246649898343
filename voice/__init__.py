"""
PotionPlay Voice I/O

- STT: continuous speech capture over console, queue or Whisper recognition
- TTS: audio playback, OpenAI speech and local fallback synthesis
"""

from .stt import SpeechCaptureAdapter
from .tts import AudioPlayer, LocalSpeechSynthesizer

__all__ = [
    "SpeechCaptureAdapter",
    "AudioPlayer",
    "LocalSpeechSynthesizer",
]
