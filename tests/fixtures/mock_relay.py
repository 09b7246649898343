"""
Mock Relay Collaborators for Testing.

Stand-ins for the image interpretation and conversation endpoints, plus a
still-frame source, so interaction flows run without network or camera.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from potionplay.exceptions import CameraError
from potionplay.types import ConversationReply, Interpretation


class MockFrameSource:
    """Mock FrameSource returning a fixed JPEG-ish payload."""

    def __init__(self, fail: bool = False, jpeg: bytes = b"\xff\xd8mock-frame\xff\xd9"):
        self.fail = fail
        self.jpeg = jpeg
        self.captures: List[float] = []
        self.opened = 0
        self.released = 0

    async def open(self) -> None:
        self.opened += 1
        if self.fail:
            raise CameraError("Could not open webcam 0. Check camera permissions.", device_index=0)

    async def capture_jpeg(self, quality: float = 0.8) -> bytes:
        self.captures.append(quality)
        if self.fail:
            raise CameraError("Could not open webcam 0. Check camera permissions.", device_index=0)
        return self.jpeg

    def release(self) -> None:
        self.released += 1


class MockInterpreter:
    """
    Mock ImageInterpreter.

    Example:
        interpreter = MockInterpreter(text="A newt's eye, freshly plucked")
        result = await interpreter.interpret_image("aGVsbG8=")
    """

    def __init__(
        self,
        text: str = "Behold, a shimmering mandrake root!",
        fail: bool = False,
        raise_error: bool = False,
        delay_sec: float = 0.0,
    ):
        self.text = text
        self.fail = fail
        self.raise_error = raise_error
        self.delay_sec = delay_sec
        self.requests: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def interpret_image(self, image_b64: str) -> Interpretation:
        self.requests.append(image_b64)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        if self.raise_error:
            raise RuntimeError("socket closed")
        if self.fail:
            return Interpretation(success=False, error="HTTP error! status: 500")
        return Interpretation(text=self.text, success=True)


class MockResponder:
    """Mock ConversationResponder that replies from a script."""

    def __init__(self, replies: Sequence[str] = ("Indeed, young apprentice.",), fail: bool = False):
        self.replies = list(replies)
        self.fail = fail
        self.requests: List[Tuple[str, List[str]]] = []
        self.gate: Optional[asyncio.Event] = None

    async def converse(self, user_input: str, history: Sequence[str]) -> ConversationReply:
        self.requests.append((user_input, list(history)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            return ConversationReply(success=False, error="HTTP error! status: 502")
        reply = self.replies[min(len(self.requests), len(self.replies)) - 1]
        return ConversationReply(text=reply, success=True)
