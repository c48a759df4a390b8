"""
Shared workflow plumbing: result dictionaries, single-face extraction and
stale-result detection.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np

from .capture import CancellationToken
from .errors import (FaceAttendanceError, ModelUnavailable, MultipleFacesDetected,
                     NoFaceDetected, StaleResult)
from .extractor import DescriptorExtractor, Detection

logger = logging.getLogger(__name__)


class Workflow:
    """Base class for the enrollment and session state machines."""

    def __init__(self, extractor: DescriptorExtractor):
        self.extractor = extractor
        self.state = None
        # Bumped on every state change that must invalidate pending extractions
        self._generation = 0

    def _invalidate_pending(self):
        self._generation += 1

    def _success(self, message: str, **extra) -> Dict[str, Any]:
        result = {
            'success': True,
            'state': self.state,
            'error': None,
            'message': message,
        }
        result.update(extra)
        return result

    def _failure(self, error: FaceAttendanceError, **extra) -> Dict[str, Any]:
        result = {
            'success': False,
            'state': self.state,
            'error': error.reason,
            'message': error.message,
        }
        result.update(extra)
        return result

    async def _extract_single(self, frame: np.ndarray,
                              token: Optional[CancellationToken] = None,
                              pick_largest: bool = False) -> Detection:
        """
        Extract exactly one face descriptor from a frame.

        Raises:
            ModelUnavailable: extractor not initialized
            NoFaceDetected / MultipleFacesDetected: wrong number of faces
            StaleResult: token cancelled or workflow moved on while extracting
        """
        if not self.extractor.ready:
            raise ModelUnavailable("Descriptor extractor is not initialized")

        generation = self._generation
        detections = await self.extractor.extract(frame)

        if token is not None:
            token.raise_if_cancelled()
        if generation != self._generation:
            raise StaleResult("Workflow changed state during extraction")

        if not detections:
            raise NoFaceDetected()
        if len(detections) > 1:
            if not pick_largest:
                raise MultipleFacesDetected(f"{len(detections)} faces in frame")
            logger.debug(f"{len(detections)} faces in frame, using the largest")
            return max(detections, key=lambda d: d.area)

        return detections[0]
