"""
Descriptor Extraction Module

Turns a captured frame into face descriptors. The default implementation
wraps the face_recognition library (dlib ResNet, 128-D descriptors).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from .errors import ModelUnavailable

logger = logging.getLogger(__name__)

BoundingBox = Tuple[int, int, int, int]  # (top, right, bottom, left)


@dataclass
class Detection:
    vector: np.ndarray
    bounding_box: Optional[BoundingBox] = None

    @property
    def area(self) -> int:
        if self.bounding_box is None:
            return 0
        top, right, bottom, left = self.bounding_box
        return max(0, bottom - top) * max(0, right - left)


class DescriptorExtractor:
    """Interface for anything that extracts descriptors from frames."""

    ready = False

    async def initialize(self):
        """Load models. Raises ModelUnavailable on failure."""
        self.ready = True

    async def extract(self, frame: np.ndarray) -> List[Detection]:
        """Return one detection per face found; must not modify the frame."""
        raise NotImplementedError


class FaceRecognitionExtractor(DescriptorExtractor):
    """Descriptor extraction with the face_recognition library."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize extractor.

        Args:
            config: Configuration dictionary with embedding settings
        """
        self.config = config.get('embedding', {})
        self.detection_model = self.config.get('detection_model', 'hog')
        self.num_jitters = self.config.get('num_jitters', 1)
        self.upsample_times = self.config.get('upsample_times', 1)
        self.ready = False
        self._backend = None

    async def initialize(self):
        if self.ready:
            return

        try:
            # dlib and the bundled model weights load on import
            import face_recognition
        except ImportError as e:
            logger.error(f"Failed to load face recognition models: {e}")
            raise ModelUnavailable(str(e))

        self._backend = face_recognition
        self.ready = True
        logger.info(f"Face recognition models loaded (detector: {self.detection_model})")

    async def extract(self, frame: np.ndarray) -> List[Detection]:
        if not self.ready:
            raise ModelUnavailable("Extractor used before initialization")

        if frame is None or frame.size == 0:
            return []

        # OpenCV frames are BGR; cvtColor returns a new array
        if frame.ndim == 3 and frame.shape[2] == 3:
            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        else:
            rgb_frame = frame

        locations = self._backend.face_locations(
            rgb_frame,
            number_of_times_to_upsample=self.upsample_times,
            model=self.detection_model,
        )
        if not locations:
            return []

        encodings = self._backend.face_encodings(
            rgb_frame,
            known_face_locations=locations,
            num_jitters=self.num_jitters,
        )

        detections = [
            Detection(vector=np.asarray(encoding, dtype=np.float64), bounding_box=tuple(location))
            for location, encoding in zip(locations, encodings)
        ]
        logger.debug(f"Extracted {len(detections)} face descriptor(s)")
        return detections


def create_extractor(config: Dict[str, Any]) -> DescriptorExtractor:
    """Build the extractor named in ``embedding.model``."""
    model_name = config.get('embedding', {}).get('model', 'face_recognition')
    if model_name == 'face_recognition':
        return FaceRecognitionExtractor(config)
    raise ValueError(f"Unsupported embedding model: {model_name}")
