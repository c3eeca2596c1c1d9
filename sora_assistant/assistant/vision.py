"""
Camera frame source for scene analysis.

Captures single frames on demand from a USB/built-in camera and encodes them
as JPEG for the analysis service.

Requires: opencv-python-headless >= 4.8.0
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from sora_assistant.core.image import EncodedImage

logger = logging.getLogger(__name__)


@dataclass
class CameraConfig:
    """Configuration for camera capture."""

    device: int = 0
    width: int = 1920  # Requested, the device may deliver less
    height: int = 1080
    jpeg_quality: int = 80
    warmup_frames: int = 5
    flush_frames: int = 3


class FrameSource(ABC):
    """Anything that can hand out the current frame as an encoded still."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while a live stream is attached."""

    @abstractmethod
    def open(self) -> bool:
        """Attach to the stream. Returns False if it is unavailable."""

    @abstractmethod
    def capture_frame(self) -> Optional[EncodedImage]:
        """
        Capture the current frame.

        Returns:
            EncodedImage, or None when no stream is attached
        """

    def close(self) -> None:
        """Release the stream."""


class Camera(FrameSource):
    """
    OpenCV camera capture.

    Usage:
        with Camera() as cam:
            frame = cam.capture_frame()
            if frame:
                response = await client.analyze(frame)
    """

    def __init__(self, config: Optional[CameraConfig] = None):
        self.config = config or CameraConfig()
        self._cap = None
        self._cv2 = None

    @property
    def is_open(self) -> bool:
        """Check if camera is currently open."""
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> bool:
        """
        Open the camera device.

        Returns:
            True if camera opened successfully, False otherwise.
        """
        try:
            import cv2
        except ImportError:
            logger.error("OpenCV not installed. Install with: pip install opencv-python-headless")
            return False

        self._cv2 = cv2

        try:
            self._cap = cv2.VideoCapture(self.config.device)
            if not self._cap.isOpened():
                logger.error("Failed to open camera device %s", self.config.device)
                self._cap = None
                return False

            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)

            # Discard warmup frames (auto-exposure settling)
            for _ in range(self.config.warmup_frames):
                self._cap.read()

            actual_w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            logger.info("Camera ready: device=%s (%dx%d)", self.config.device, actual_w, actual_h)
            return True

        except Exception as e:
            logger.error("Camera error: %s", e)
            self._cap = None
            return False

    def read_raw(self) -> Optional[np.ndarray]:
        """
        Read the most recent raw BGR frame.

        Stale frames buffered by the driver are flushed first so the result
        always reflects the live feed rather than a cached frame.
        """
        if not self.is_open:
            return None

        for _ in range(self.config.flush_frames):
            self._cap.grab()

        ret, frame = self._cap.read()
        if not ret or frame is None:
            return None

        return frame

    def encode(self, frame: np.ndarray) -> Optional[EncodedImage]:
        """JPEG-encode a BGR frame at its native resolution."""
        encode_params = [self._cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality]
        success, jpeg_buf = self._cv2.imencode(".jpg", frame, encode_params)
        if not success:
            return None

        height, width = frame.shape[:2]
        return EncodedImage(data=jpeg_buf.tobytes(), width=width, height=height)

    def capture_frame(self) -> Optional[EncodedImage]:
        """
        Capture a single frame and return it as JPEG.

        Returns:
            EncodedImage, or None if no stream is attached or the read failed.
        """
        frame = self.read_raw()
        if frame is None:
            return None
        return self.encode(frame)

    def close(self) -> None:
        """Release the camera device."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def load_image_file(path: str) -> EncodedImage:
    """
    Load an image file as an EncodedImage (re-encoded to JPEG).

    Raises:
        FileNotFoundError: If the file can't be read as an image
    """
    import cv2

    frame = cv2.imread(str(path))
    if frame is None:
        raise FileNotFoundError(f"Not a readable image: {path}")

    success, jpeg_buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, CameraConfig.jpeg_quality])
    if not success:
        raise ValueError(f"Could not encode image: {path}")

    height, width = frame.shape[:2]
    return EncodedImage(data=jpeg_buf.tobytes(), width=width, height=height)
