"""
Matcher Module

Nearest-neighbor identification of a query descriptor against the
descriptor store, using Euclidean distance and a distance/confidence
double threshold.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from .descriptor_store import DescriptorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    owner_id: str
    distance: float
    confidence: float
    display_name: Optional[str] = None


class Matcher:
    """Finds the enrolled descriptor closest to a query vector."""

    def __init__(self, config: Dict[str, Any], store: DescriptorStore):
        """
        Initialize matcher.

        Args:
            config: Configuration dictionary with recognition settings
            store: Descriptor store to search
        """
        self.store = store
        self.recognition_config = config.get('recognition', {})

        self.max_distance = float(self.recognition_config.get('max_distance', 0.6))
        self.min_confidence = float(self.recognition_config.get('min_confidence', 0.6))

        if self.max_distance <= 0:
            raise ValueError(f"max_distance must be positive, got {self.max_distance}")

        # confidence > min_confidence is equivalent to
        # distance < max_distance * (1 - min_confidence)
        if self.min_confidence >= 0:
            logger.info(
                "Distance check is implied by the confidence check "
                f"(effective distance limit {self.effective_distance_limit:.3f})")

        logger.info(f"Matcher initialized (max_distance={self.max_distance}, "
                    f"min_confidence={self.min_confidence})")

    @property
    def effective_distance_limit(self) -> float:
        """Largest distance that passes both checks (exclusive)."""
        return min(self.max_distance, self.max_distance * (1.0 - self.min_confidence))

    def confidence_for(self, distance: float) -> float:
        return 1.0 - distance / self.max_distance

    def is_accepted(self, distance: float) -> bool:
        """Both thresholds are checked independently."""
        return distance < self.max_distance and self.confidence_for(distance) > self.min_confidence

    def nearest(self, query) -> Optional[MatchResult]:
        """
        Closest enrolled descriptor, ignoring the thresholds.

        Ties go to the descriptor that comes first in store order.

        Raises:
            DimensionMismatch: if the query length differs from the store's
        """
        query = self.store.check_dimension(query)

        owner_ids, matrix = self.store.matrix()
        if not owner_ids:
            return None

        distances = np.linalg.norm(matrix - query, axis=1)
        best = int(np.argmin(distances))  # first occurrence on ties
        distance = float(distances[best])
        owner_id = owner_ids[best]

        return MatchResult(
            owner_id=owner_id,
            distance=distance,
            confidence=self.confidence_for(distance),
            display_name=self.store.get(owner_id).display_name,
        )

    def match(self, query) -> Optional[MatchResult]:
        """
        Identify a query descriptor.

        Returns:
            The best match if it passes both thresholds, otherwise None.
            An empty store yields None.

        Raises:
            DimensionMismatch: if the query length differs from the store's
        """
        candidate = self.nearest(query)
        if candidate is None:
            logger.debug("Descriptor store is empty, no match")
            return None

        if not self.is_accepted(candidate.distance):
            logger.debug(f"Nearest candidate {candidate.owner_id} rejected "
                         f"(distance={candidate.distance:.4f}, confidence={candidate.confidence:.3f})")
            return None

        logger.debug(f"Matched {candidate.owner_id} "
                     f"(distance={candidate.distance:.4f}, confidence={candidate.confidence:.3f})")
        return candidate
