"""
Tests for the camera frame source (OpenCV mocked, no device needed).
"""

import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from sora_assistant.assistant.vision import Camera, CameraConfig, load_image_file
from sora_assistant.core.image import EncodedImage


def _fake_cv2(opened=True, frame=None):
    cv2 = MagicMock()
    cv2.CAP_PROP_FRAME_WIDTH = 3
    cv2.CAP_PROP_FRAME_HEIGHT = 4
    cv2.IMWRITE_JPEG_QUALITY = 1

    cap = MagicMock()
    cap.isOpened.return_value = opened
    cap.get.side_effect = lambda prop: {3: 1280, 4: 720}.get(prop, 0)
    if frame is None:
        frame = np.zeros((720, 1280, 3), dtype=np.uint8)
    cap.read.return_value = (True, frame)
    cv2.VideoCapture.return_value = cap

    cv2.imencode.return_value = (True, np.frombuffer(b"\xff\xd8jpeg\xff\xd9", dtype=np.uint8))
    return cv2, cap


class TestCamera:
    """Tests for Camera."""

    def test_open_and_capture(self):
        cv2, cap = _fake_cv2()
        with patch.dict(sys.modules, {"cv2": cv2}):
            camera = Camera(CameraConfig(device=1, warmup_frames=2, flush_frames=3))
            assert camera.open() is True
            assert camera.is_open

            frame = camera.capture_frame()

        cv2.VideoCapture.assert_called_once_with(1)
        cap.set.assert_any_call(cv2.CAP_PROP_FRAME_WIDTH, 1920)
        assert cap.grab.call_count == 3
        assert frame == EncodedImage(data=b"\xff\xd8jpeg\xff\xd9", width=1280, height=720)
        cv2.imencode.assert_called_once()
        assert cv2.imencode.call_args[0][2] == [cv2.IMWRITE_JPEG_QUALITY, 80]

    def test_open_failure(self):
        cv2, _ = _fake_cv2(opened=False)
        with patch.dict(sys.modules, {"cv2": cv2}):
            camera = Camera()
            assert camera.open() is False
            assert camera.is_open is False
            assert camera.capture_frame() is None

    def test_opencv_missing(self):
        with patch.dict(sys.modules, {"cv2": None}):
            assert Camera().open() is False

    def test_capture_when_closed(self):
        assert Camera().capture_frame() is None

    def test_failed_read(self):
        cv2, cap = _fake_cv2()
        with patch.dict(sys.modules, {"cv2": cv2}):
            camera = Camera()
            camera.open()
            cap.read.return_value = (False, None)
            assert camera.capture_frame() is None

    def test_context_manager_releases(self):
        cv2, cap = _fake_cv2()
        with patch.dict(sys.modules, {"cv2": cv2}):
            with Camera() as camera:
                assert camera.is_open
        cap.release.assert_called_once()
        assert camera.is_open is False


class TestLoadImageFile:
    def test_unreadable_file(self, tmp_path):
        cv2, _ = _fake_cv2()
        cv2.imread.return_value = None
        with patch.dict(sys.modules, {"cv2": cv2}):
            with pytest.raises(FileNotFoundError):
                load_image_file(tmp_path / "missing.jpg")

    def test_reencodes_to_jpeg(self, tmp_path):
        cv2, _ = _fake_cv2()
        cv2.imread.return_value = np.zeros((10, 20, 3), dtype=np.uint8)
        with patch.dict(sys.modules, {"cv2": cv2}):
            image = load_image_file(tmp_path / "photo.png")
        assert (image.width, image.height) == (20, 10)
        assert image.mime_type == "image/jpeg"
