"""
PotionPlay Recognition Backends

Backends yield the cumulative transcript of one recognition session:
interim results grow word by word and the session ends with a final
result. A session that hears nothing before its silence timeout raises
RecognitionError(kind="no-speech").

- QueueRecognitionBackend: utterances pushed in by code (tests, scripting)
- ConsoleRecognitionBackend: typed lines from stdin, with /commands
"""

from __future__ import annotations

import asyncio
import sys
import threading
from typing import AsyncIterator, Callable, Optional, TextIO

from potionplay.exceptions import RecognitionError
from potionplay.logging_config import get_logger
from potionplay.types import TranscriptEvent

logger = get_logger(__name__)

CommandHandler = Callable[[str], None]


async def utterance_events(text: str) -> AsyncIterator[TranscriptEvent]:
    """Replay an utterance as cumulative interim results plus a final one."""
    words = text.split()
    for i in range(1, len(words)):
        yield TranscriptEvent(" ".join(words[:i]), is_final=False)
        await asyncio.sleep(0)
    if words:
        yield TranscriptEvent(" ".join(words), is_final=True)


class QueueRecognitionBackend:
    """
    Recognition fed from an in-process queue.

    Each listen() consumes one utterance. close() ends the pending session
    without speech and makes the backend unsupported.
    """

    _CLOSED = object()

    def __init__(self, silence_timeout_sec: Optional[float] = None, interim_results: bool = True):
        self.silence_timeout_sec = silence_timeout_sec
        self.interim_results = interim_results
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def supported(self) -> bool:
        return not self._closed

    def feed(self, text: str) -> None:
        """Queue one utterance for the next session."""
        self._queue.put_nowait(text)

    def close(self) -> None:
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    async def listen(self) -> AsyncIterator[TranscriptEvent]:
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=self.silence_timeout_sec)
        except asyncio.TimeoutError as e:
            raise RecognitionError("No speech detected", kind="no-speech") from e

        if item is self._CLOSED:
            return

        if self.interim_results:
            async for event in utterance_events(item):
                yield event
        elif item.strip():
            yield TranscriptEvent(item.strip(), is_final=True)


class ConsoleRecognitionBackend:
    """
    Typed input stands in for a microphone.

    A daemon thread reads lines from the stream into a queue, so a pending
    read never blocks interpreter exit. Lines starting with "/" are handed
    to the command handler instead of being treated as speech. End of input
    makes the backend unsupported.
    """

    def __init__(
        self,
        command_handler: Optional[CommandHandler] = None,
        stream: Optional[TextIO] = None,
        prompt: str = "> ",
    ):
        self.command_handler = command_handler
        self.stream = stream or sys.stdin
        self.prompt = prompt
        self._lines: Optional[asyncio.Queue] = None
        self._reader: Optional[threading.Thread] = None
        self._eof = False

    @property
    def supported(self) -> bool:
        return not self._eof

    def _ensure_reader(self) -> asyncio.Queue:
        """Start the reader thread on first use."""
        if self._lines is None:
            loop = asyncio.get_running_loop()
            self._lines = asyncio.Queue()
            self._reader = threading.Thread(
                target=self._read_lines,
                args=(loop, self._lines),
                name="console-input",
                daemon=True,
            )
            self._reader.start()
        return self._lines

    def _read_lines(self, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
        while True:
            line = self.stream.readline()
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                # Event loop closed
                return
            if line == "":
                return

    async def listen(self) -> AsyncIterator[TranscriptEvent]:
        lines = self._ensure_reader()
        if self.prompt and self.stream is sys.stdin and lines.empty():
            print(self.prompt, end="", flush=True)
        line = await lines.get()

        if line == "":
            self._eof = True
            logger.info("Console input closed")
            if self.command_handler is not None:
                self.command_handler("/quit")
            return

        text = line.strip()
        if not text:
            return

        if text.startswith("/"):
            if self.command_handler is None:
                logger.warning(f"Ignoring command with no handler: {text}")
            else:
                self.command_handler(text)
            return

        async for event in utterance_events(text):
            yield event
