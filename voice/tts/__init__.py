"""
PotionPlay Text-to-Speech

- AudioPlayer: soundfile decoding and sounddevice playback
- LocalSpeechSynthesizer: espeak / say / SAPI fallback voice
- OpenAISpeechBackend: direct OpenAI speech synthesis
"""

from .audio_player import AudioPlayer, decode_audio, parse_mime_type
from .local_synthesis import LocalSpeechSynthesizer
from .openai_speech import OpenAISpeechBackend

__all__ = [
    "AudioPlayer",
    "decode_audio",
    "parse_mime_type",
    "LocalSpeechSynthesizer",
    "OpenAISpeechBackend",
]
