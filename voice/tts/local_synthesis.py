"""
PotionPlay Local Speech Synthesis

On-device speech used when remote text-to-speech fails or its audio cannot
be played. Uses the platform's speech command:

- Linux: espeak / espeak-ng
- macOS: say
- Windows: PowerShell SAPI

Installed voices are listed once per synthesizer so the preferred keywords
("female", "natural") can pick one when no voice is configured.
"""

from __future__ import annotations

import asyncio
import platform
import re
import shutil
from typing import List, NamedTuple, Optional, Sequence
from xml.sax.saxutils import escape

from potionplay.config import LocalVoiceConfig
from potionplay.logging_config import get_logger

logger = get_logger(__name__)

VOICE_LIST_TIMEOUT_SEC = 5.0

SAPI_PRELUDE = (
    "Add-Type -AssemblyName System.Speech; "
    "$speak = New-Object System.Speech.Synthesis.SpeechSynthesizer; "
)

_SAY_VOICE_LINE = re.compile(r"^(?P<name>.+?)\s+(?P<lang>[a-z]{2,3}[_-][A-Za-z0-9]+)\s+#")
_GENDERS = {"F": "female", "M": "male"}


def _ps_quote(value: str) -> str:
    """Escape for a single-quoted PowerShell string."""
    return value.replace("'", "''")


class LocalVoice(NamedTuple):
    """An installed voice: what the engine accepts, and what keywords match."""
    id: str
    label: str


def parse_espeak_voices(output: str) -> List[LocalVoice]:
    """Parse ``espeak --voices``: Pty, Language, Age/Gender, VoiceName, File."""
    voices = []
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 4:
            continue
        gender = _GENDERS.get(fields[2].rpartition("/")[2], "")
        voices.append(LocalVoice(fields[1], f"{fields[3]} {gender}".strip()))
    return voices


def parse_say_voices(output: str) -> List[LocalVoice]:
    """Parse ``say -v ?``: name, locale, then a sample sentence after '#'."""
    voices = []
    for line in output.splitlines():
        match = _SAY_VOICE_LINE.match(line)
        if match:
            name = match.group("name").strip()
            voices.append(LocalVoice(name, name))
    return voices


def parse_sapi_voices(output: str) -> List[LocalVoice]:
    """Parse ``Name|Gender`` lines printed by the SAPI listing script."""
    voices = []
    for line in output.splitlines():
        name, _, gender = line.strip().partition("|")
        if name:
            voices.append(LocalVoice(name, f"{name} {gender.lower()}".strip()))
    return voices


class LocalSpeechSynthesizer:
    """
    Local speech synthesis with rate, pitch, volume and voice hints.

    speak() never raises: a missing engine or a failed process returns False
    so the caller can finish its speech cycle.
    """

    # Engine baselines that the 1.0 multipliers map onto
    ESPEAK_BASE_RATE = 175
    ESPEAK_BASE_PITCH = 50
    SAY_BASE_RATE = 200
    SAY_PITCH_SCALE = 50

    def __init__(self, config: Optional[LocalVoiceConfig] = None, system: Optional[str] = None):
        self.config = config or LocalVoiceConfig()
        self._platform = system or platform.system()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._voices: Optional[List[LocalVoice]] = None

    def _espeak_binary(self) -> Optional[str]:
        return shutil.which("espeak-ng") or shutil.which("espeak")

    @property
    def available(self) -> bool:
        """Check whether a speech engine exists on this host."""
        if not self.config.enabled:
            return False
        if self._platform == "Darwin":
            return shutil.which("say") is not None
        if self._platform == "Windows":
            return shutil.which("powershell") is not None
        return self._espeak_binary() is not None

    # =========================================================================
    # Voices
    # =========================================================================

    def _voices_command(self) -> List[str]:
        if self._platform == "Darwin":
            return ["say", "-v", "?"]
        if self._platform == "Windows":
            script = (
                SAPI_PRELUDE
                + "$speak.GetInstalledVoices() | ForEach-Object "
                "{ $_.VoiceInfo.Name + '|' + $_.VoiceInfo.Gender }"
            )
            return ["powershell", "-Command", script]
        return [self._espeak_binary() or "espeak", "--voices"]

    def _parse_voices(self, output: str) -> List[LocalVoice]:
        if self._platform == "Darwin":
            return parse_say_voices(output)
        if self._platform == "Windows":
            return parse_sapi_voices(output)
        return parse_espeak_voices(output)

    async def list_voices(self) -> List[LocalVoice]:
        """
        Installed voices, listed once and cached.

        A failed listing yields an empty list; speech then uses the engine's
        default voice.
        """
        if self._voices is not None:
            return self._voices

        voices: List[LocalVoice] = []
        try:
            process = await asyncio.create_subprocess_exec(
                *self._voices_command(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            try:
                stdout, _ = await asyncio.wait_for(process.communicate(), VOICE_LIST_TIMEOUT_SEC)
            except asyncio.TimeoutError:
                process.kill()
                raise
            voices = self._parse_voices(stdout.decode("utf-8", errors="replace"))
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not list local voices: {e}")

        self._voices = voices
        logger.debug(f"Found {len(voices)} local voices")
        return voices

    def _pick_voice(self, voices: Sequence[LocalVoice]) -> Optional[str]:
        """Pick the configured voice, else the first whose label matches a keyword."""
        if self.config.voice:
            return self.config.voice
        keywords = [k.lower() for k in self.config.preferred_keywords]
        for voice in voices:
            if any(k in voice.label.lower() for k in keywords):
                return voice.id
        return None

    # =========================================================================
    # Speech
    # =========================================================================

    def build_command(self, text: str, voices: Sequence[LocalVoice] = ()) -> List[str]:
        """Build the platform command line for one utterance."""
        voice = self._pick_voice(voices)

        if self._platform == "Darwin":
            cmd = ["say", "-r", str(int(self.SAY_BASE_RATE * self.config.rate))]
            if voice:
                cmd += ["-v", voice]
            offset = int(round((self.config.pitch - 1.0) * self.SAY_PITCH_SCALE))
            if offset:
                # Embedded command; relative to the voice's own baseline
                text = f"[[pbas {offset:+d}]] {text}"
            return cmd + [text]

        if self._platform == "Windows":
            rate = max(-10, min(10, int(round((self.config.rate - 1.0) * 10))))
            volume = int(self.config.volume * 100)
            pitch = int(round((self.config.pitch - 1.0) * 100))
            ssml = (
                "<speak version='1.0' xmlns='http://www.w3.org/2001/10/synthesis' xml:lang='en-US'>"
                f"<prosody pitch='{pitch:+d}%'>{escape(text)}</prosody></speak>"
            )
            script = SAPI_PRELUDE + f"$speak.Rate = {rate}; $speak.Volume = {volume}; "
            if voice:
                script += f"$speak.SelectVoice('{_ps_quote(voice)}'); "
            script += f"$speak.SpeakSsml('{_ps_quote(ssml)}')"
            return ["powershell", "-Command", script]

        cmd = [
            self._espeak_binary() or "espeak",
            "-s", str(int(self.ESPEAK_BASE_RATE * self.config.rate)),
            "-p", str(min(99, int(self.ESPEAK_BASE_PITCH * self.config.pitch))),
            "-a", str(int(200 * self.config.volume)),
        ]
        if voice:
            cmd += ["-v", voice]
        return cmd + [text]

    async def speak(self, text: str) -> bool:
        """
        Speak text and wait until it finishes.

        Returns:
            True if the engine ran to completion
        """
        if not text.strip():
            return False
        if not self.available:
            logger.warning(f"No local speech engine available. Would speak: {text[:80]}")
            return False

        voices = [] if self.config.voice else await self.list_voices()

        # Stop any ongoing speech
        self.cancel()

        cmd = self.build_command(text, voices)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            returncode = await self._process.wait()
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Local speech command failed to start: {e}")
            return False
        finally:
            self._process = None

        if returncode != 0:
            logger.warning(f"Local speech exited with code {returncode}")
            return False
        return True

    def cancel(self) -> None:
        """Terminate the running speech process, if any."""
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
