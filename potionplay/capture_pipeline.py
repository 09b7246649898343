"""
PotionPlay Capture-and-Interpret Pipeline

One capture cycle: snapshot a webcam frame, JPEG encode it, submit it for a
themed interpretation, and speak the result. The cycle runs under a
CycleLease, which is released in a finally block so a failed or cancelled
cycle can never leave the analyzing flag stuck.
"""

from __future__ import annotations

import base64
import time
from typing import Callable, Optional

from potionplay.exceptions import CameraError
from potionplay.interaction_state import CycleLease
from potionplay.logging_config import get_logger
from potionplay.types import FrameSource, ImageInterpreter, Interpretation

logger = get_logger(__name__)


class CaptureAndInterpretPipeline:
    """
    Frame capture, interpretation and spoken result.

    ``latest`` holds the most recent interpretation until superseded or
    cleared by clear().
    """

    def __init__(
        self,
        camera: Optional[FrameSource],
        interpreter: ImageInterpreter,
        dispatcher=None,
        jpeg_quality: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.camera = camera
        self.interpreter = interpreter
        self.dispatcher = dispatcher
        self.jpeg_quality = jpeg_quality
        self._clock = clock
        self.latest: Optional[Interpretation] = None
        # Survives clear(); only a successful open or capture resets it
        self.camera_error: Optional[str] = None
        self._generation = 0

        # Diagnostics
        self.cycles_run = 0
        self.cycles_failed = 0

    async def open_camera(self) -> bool:
        """
        Acquire the webcam before the first cycle.

        A failure, typically denied permission, is kept in ``camera_error``
        so it can be shown until the camera works.
        """
        if self.camera is None:
            return False
        try:
            await self.camera.open()
        except CameraError as e:
            self.camera_error = e.message
            logger.error(f"Camera unavailable: {e}")
            return False
        self.camera_error = None
        logger.info("Camera ready")
        return True

    async def interpret_frame(self) -> Interpretation:
        """Capture one frame and interpret it. Never raises."""
        if self.camera is None:
            return Interpretation(success=False, error="Camera not available")

        try:
            jpeg = await self.camera.capture_jpeg(self.jpeg_quality)
        except CameraError as e:
            self.camera_error = e.message
            logger.error(f"Frame capture failed: {e}")
            return Interpretation(success=False, error=e.message)
        self.camera_error = None

        image_b64 = base64.b64encode(jpeg).decode("ascii")
        try:
            return await self.interpreter.interpret_image(image_b64)
        except Exception as e:
            logger.error(f"Error analyzing image: {e}")
            return Interpretation(success=False, error="Failed to analyze image")

    async def run(self, lease: CycleLease, speak: bool = True) -> Interpretation:
        """
        Run one cycle under a held lease.

        Args:
            lease: The in-flight lease from the wake detector or a manual trigger
            speak: Hand a successful interpretation to the dispatcher

        A cycle that outlives clear() is discarded: its result is neither
        stored nor spoken.

        Returns:
            The interpretation, successful or not
        """
        self.cycles_run += 1
        self.latest = None
        generation = self._generation
        try:
            interpretation = await self.interpret_frame()
            if generation != self._generation:
                logger.info("Discarding interpretation from a cleared cycle")
                return interpretation
            self.latest = interpretation

            if not interpretation.success:
                self.cycles_failed += 1
                logger.warning(f"Interpretation failed: {interpretation.error}")
            elif not interpretation.text.strip():
                logger.info("Interpretation returned no text")
            else:
                logger.info(f"Interpretation: {interpretation.text[:80]}")
                if speak and self.dispatcher is not None:
                    await self.dispatcher.speak(interpretation.text)

            return interpretation
        finally:
            lease.release(self._clock())

    def clear(self) -> None:
        self.latest = None
        self._generation += 1
