"""
Unit tests for the webcam frame source.

cv2 is patched out at the module level so no camera is opened.
"""

from unittest.mock import MagicMock, patch

import pytest

from potionplay.config import CameraConfig
from potionplay.exceptions import CameraError
from services.camera import WebcamFrameSource


@pytest.fixture
def cv2_mock():
    with patch("services.camera.webcam.cv2") as mock:
        device = mock.VideoCapture.return_value
        device.isOpened.return_value = True
        device.read.return_value = (True, MagicMock(name="frame"))
        encoded = MagicMock()
        encoded.tobytes.return_value = b"\xff\xd8jpeg\xff\xd9"
        mock.imencode.return_value = (True, encoded)
        yield mock


class TestCaptureJpeg:
    """Tests for capture_jpeg()."""

    @pytest.mark.asyncio
    async def test_opens_once_and_encodes(self, cv2_mock):
        camera = WebcamFrameSource(device_index=2, width=320, height=240)

        first = await camera.capture_jpeg(quality=0.8)
        await camera.capture_jpeg(quality=0.8)

        assert first == b"\xff\xd8jpeg\xff\xd9"
        cv2_mock.VideoCapture.assert_called_once_with(2)
        device = cv2_mock.VideoCapture.return_value
        device.set.assert_any_call(cv2_mock.CAP_PROP_FRAME_WIDTH, 320)
        device.set.assert_any_call(cv2_mock.CAP_PROP_FRAME_HEIGHT, 240)

        args = cv2_mock.imencode.call_args.args
        assert args[0] == ".jpg"
        assert args[2] == [cv2_mock.IMWRITE_JPEG_QUALITY, 80]

    @pytest.mark.asyncio
    async def test_device_unavailable(self, cv2_mock):
        cv2_mock.VideoCapture.return_value.isOpened.return_value = False
        camera = WebcamFrameSource(device_index=1)

        with pytest.raises(CameraError) as exc_info:
            await camera.capture_jpeg()

        assert "Could not open webcam 1" in str(exc_info.value)
        assert exc_info.value.device_index == 1
        cv2_mock.VideoCapture.return_value.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreadable_frame(self, cv2_mock):
        cv2_mock.VideoCapture.return_value.read.return_value = (False, None)
        with pytest.raises(CameraError):
            await WebcamFrameSource().capture_jpeg()

    @pytest.mark.asyncio
    async def test_encode_failure(self, cv2_mock):
        cv2_mock.imencode.return_value = (False, None)
        with pytest.raises(CameraError) as exc_info:
            await WebcamFrameSource().capture_jpeg()
        assert "JPEG" in str(exc_info.value)


class TestOpen:
    """Tests for open()."""

    @pytest.mark.asyncio
    async def test_open_acquires_before_capture(self, cv2_mock):
        camera = WebcamFrameSource(device_index=0)

        await camera.open()
        assert camera.is_open
        cv2_mock.VideoCapture.return_value.read.assert_not_called()

        await camera.capture_jpeg()
        cv2_mock.VideoCapture.assert_called_once_with(0)

    @pytest.mark.asyncio
    async def test_open_permission_denied(self, cv2_mock):
        cv2_mock.VideoCapture.return_value.isOpened.return_value = False

        with pytest.raises(CameraError) as exc_info:
            await WebcamFrameSource(device_index=0).open()

        assert "Check camera permissions" in str(exc_info.value)


class TestRelease:
    """Tests for release() and construction."""

    @pytest.mark.asyncio
    async def test_release_idempotent(self, cv2_mock):
        camera = WebcamFrameSource()
        await camera.capture_jpeg()
        assert camera.is_open

        camera.release()
        camera.release()

        cv2_mock.VideoCapture.return_value.release.assert_called_once()
        assert not camera.is_open

    def test_from_config(self):
        camera = WebcamFrameSource.from_config(CameraConfig(device_index=3, width=1280, height=720))
        assert (camera.device_index, camera.width, camera.height) == (3, 1280, 720)
        assert not camera.is_open
