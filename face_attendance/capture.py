"""
Capture Module

Frame sources for enrollment and attendance, and the cancellation token
that lets a stopped stream invalidate extractions still in flight.
"""

import logging
from typing import Any, Dict, List, Optional, Union

import cv2
import numpy as np

from .errors import CaptureError, StaleResult

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared between a stream and its consumers."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True

    def raise_if_cancelled(self):
        if self._cancelled:
            raise StaleResult("Capture stream was stopped")


class CaptureSource:
    """
    Base frame source.

    ``start()`` opens the stream and issues a fresh token; ``stop()``
    releases the device and cancels that token.
    """

    def __init__(self):
        self.token: Optional[CancellationToken] = None

    @property
    def is_running(self) -> bool:
        return self.token is not None and not self.token.cancelled

    def start(self):
        if self.is_running:
            raise CaptureError("Capture stream already started")
        self.token = CancellationToken()
        return self._open()

    def stop(self):
        if self.token is not None:
            self.token.cancel()
        self._release()

    def capture_frame(self, stream) -> Optional[np.ndarray]:
        raise NotImplementedError

    def _open(self):
        raise NotImplementedError

    def _release(self):
        pass


class OpenCVCaptureSource(CaptureSource):
    """Camera or video file read through OpenCV."""

    def __init__(self, config: Dict[str, Any], source: Optional[Union[int, str]] = None):
        """
        Initialize capture source.

        Args:
            config: Configuration dictionary with video settings
            source: Camera device ID or video file path (defaults to video.camera_id)
        """
        super().__init__()
        self.video_config = config.get('video', {})
        self.source = self.video_config.get('camera_id', 0) if source is None else source
        self.frame_width = self.video_config.get('frame_width', 640)
        self.frame_height = self.video_config.get('frame_height', 480)
        self.cap = None

    def _open(self):
        self.cap = cv2.VideoCapture(self.source)

        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            self.token.cancel()
            raise CaptureError(f"Failed to open capture source {self.source}")

        if isinstance(self.source, int):
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.frame_width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.frame_height)

        logger.info(f"Capture source {self.source} opened")
        return self.cap

    def _release(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info(f"Capture source {self.source} released")

    def capture_frame(self, stream) -> Optional[np.ndarray]:
        """Read one BGR frame; None when the stream is exhausted or stopped."""
        if stream is None or not self.is_running:
            return None

        ret, frame = stream.read()
        if not ret:
            logger.warning("Failed to read frame")
            return None
        return frame


class ImageFileSource(CaptureSource):
    """Replays still images from disk, one per capture."""

    def __init__(self, paths: List[str]):
        super().__init__()
        self.paths = list(paths)

    def _open(self):
        return iter(self.paths)

    def capture_frame(self, stream) -> Optional[np.ndarray]:
        if not self.is_running:
            return None

        path = next(stream, None)
        if path is None:
            return None

        frame = cv2.imread(path)
        if frame is None:
            raise CaptureError(f"Could not read image file: {path}")
        return frame
