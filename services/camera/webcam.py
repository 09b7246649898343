"""
PotionPlay Webcam Service

Still-frame capture from a local webcam with OpenCV. The device is opened
by open() at session start (or on first capture) and held until release();
opening, grabbing and JPEG encoding run in a worker thread so the event
loop keeps running.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import cv2

from potionplay.config import CameraConfig
from potionplay.exceptions import CameraError
from potionplay.logging_config import get_logger

logger = get_logger(__name__)


class WebcamFrameSource:
    """
    FrameSource over cv2.VideoCapture.

    Example:
        camera = WebcamFrameSource(device_index=0)
        jpeg = await camera.capture_jpeg(quality=0.8)
        camera.release()
    """

    def __init__(self, device_index: int = 0, width: int = 640, height: int = 480):
        self.device_index = device_index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: CameraConfig) -> "WebcamFrameSource":
        return cls(device_index=config.device_index, width=config.width, height=config.height)

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def _open(self) -> cv2.VideoCapture:
        if self.is_open:
            return self._capture

        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise CameraError(
                f"Could not open webcam {self.device_index}. Check camera permissions.",
                device_index=self.device_index,
            )
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        logger.info(f"Webcam {self.device_index} opened at {self.width}x{self.height}")
        return capture

    def _grab_jpeg(self, quality: float) -> bytes:
        capture = self._open()
        ok, frame = capture.read()
        if not ok or frame is None:
            raise CameraError("Failed to read frame from webcam", device_index=self.device_index)

        jpeg_quality = int(round(max(0.0, min(1.0, quality)) * 100))
        ok, encoded = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
        if not ok:
            raise CameraError("JPEG encoding failed", device_index=self.device_index)
        return encoded.tobytes()

    async def open(self) -> None:
        """
        Acquire the device now rather than on the first capture.

        Raises:
            CameraError: Device missing or access denied
        """
        loop = asyncio.get_running_loop()
        async with self._lock:
            await loop.run_in_executor(None, self._open)

    async def capture_jpeg(self, quality: float = 0.8) -> bytes:
        """
        Capture the current frame as JPEG bytes.

        Args:
            quality: JPEG quality in (0, 1]

        Raises:
            CameraError: Device unavailable or frame unreadable
        """
        loop = asyncio.get_running_loop()
        async with self._lock:
            jpeg = await loop.run_in_executor(None, self._grab_jpeg, quality)
        logger.debug(f"Captured frame: {len(jpeg)} bytes")
        return jpeg

    def release(self) -> None:
        """Release the device. Safe to call more than once."""
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Webcam {self.device_index} released")
