"""
Descriptor Store Module

Holds exactly one face descriptor per identity in an indexed array so
iteration order is deterministic. Supports JSON export/import of the whole
store and persistence through the attendance database.
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .errors import DimensionMismatch, InvalidDescriptor, StorageParseError
from .models import FaceDescriptor, now_ms

logger = logging.getLogger(__name__)


def as_vector(vector) -> np.ndarray:
    """
    Convert a descriptor to a 1-D float64 array.

    float64 holds float32 inputs exactly, so no precision is lost.
    """
    try:
        array = np.array(vector, dtype=np.float64)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidDescriptor(f"Descriptor is not numeric: {e}")

    if array.ndim != 1 or array.size == 0:
        raise InvalidDescriptor(f"Descriptor must be a non-empty 1-D vector, got shape {array.shape}")
    if not np.all(np.isfinite(array)):
        raise InvalidDescriptor("Descriptor contains NaN or infinite values")

    return array


class DescriptorStore:
    """In-memory index of face descriptors keyed by owner id."""

    def __init__(self, config: Dict[str, Any], database=None):
        """
        Initialize descriptor store.

        Args:
            config: Configuration dictionary; ``embedding.dimension`` fixes
                the descriptor length when set
            database: Optional AttendanceDatabase used by save()/load()
        """
        self.config = config
        self.embedding_config = config.get('embedding', {})
        self.configured_dimension = self.embedding_config.get('dimension')
        self.database = database

        self.descriptors: List[FaceDescriptor] = []
        self.id_to_index: Dict[str, int] = {}
        self.last_error: Optional[StorageParseError] = None
        self._matrix = None

        logger.info(f"Descriptor store initialized (dimension: {self.configured_dimension})")

    def __len__(self) -> int:
        return len(self.descriptors)

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self.id_to_index

    @property
    def dimension(self) -> Optional[int]:
        """Descriptor length every stored and query vector must have."""
        if self.descriptors:
            return self.descriptors[0].dimension
        return self.configured_dimension

    def check_dimension(self, vector) -> np.ndarray:
        """Validate a vector against the store dimension and return it as an array."""
        array = as_vector(vector)
        expected = self.dimension
        if expected is not None and array.shape[0] != expected:
            raise DimensionMismatch(expected, int(array.shape[0]))
        return array

    def enroll(self, owner_id: str, vector, display_name: Optional[str] = None,
               captured_at: Optional[int] = None) -> FaceDescriptor:
        """
        Store the descriptor for an owner, replacing any previous one.

        Args:
            owner_id: Identity the descriptor belongs to
            vector: Feature vector
            display_name: Optional name kept alongside the vector
            captured_at: Capture time in milliseconds (defaults to now)

        Returns:
            The stored descriptor
        """
        if not owner_id:
            raise InvalidDescriptor("Descriptor owner id must not be empty")

        array = self.check_dimension(vector)
        descriptor = FaceDescriptor(
            owner_id=owner_id,
            vector=array,
            captured_at=now_ms() if captured_at is None else int(captured_at),
            display_name=display_name,
        )

        if owner_id in self.id_to_index:
            # Overwrite in place; the slot keeps its iteration position
            self.descriptors[self.id_to_index[owner_id]] = descriptor
            logger.debug(f"Replaced descriptor for {owner_id}")
        else:
            self.descriptors.append(descriptor)
            self.id_to_index[owner_id] = len(self.descriptors) - 1
            logger.debug(f"Added descriptor for {owner_id}")

        self._matrix = None
        return descriptor

    def remove(self, owner_id: str) -> bool:
        """
        Remove the descriptor for an owner.

        Returns:
            True if a descriptor existed and was removed
        """
        if owner_id not in self.id_to_index:
            return False

        del self.descriptors[self.id_to_index[owner_id]]
        self._rebuild_index()

        logger.info(f"Removed descriptor for {owner_id}")
        return True

    def get(self, owner_id: str) -> Optional[FaceDescriptor]:
        idx = self.id_to_index.get(owner_id)
        return self.descriptors[idx] if idx is not None else None

    def list(self) -> List[FaceDescriptor]:
        """All descriptors in index order."""
        return list(self.descriptors)

    def clear(self):
        self.descriptors = []
        self._rebuild_index()

    def matrix(self) -> Tuple[List[str], np.ndarray]:
        """Owner ids and a stacked (n, dimension) array in index order."""
        if self._matrix is None:
            if self.descriptors:
                self._matrix = np.vstack([d.vector for d in self.descriptors])
            else:
                self._matrix = np.empty((0, self.dimension or 0), dtype=np.float64)
        return [d.owner_id for d in self.descriptors], self._matrix

    def _rebuild_index(self):
        self.id_to_index = {d.owner_id: idx for idx, d in enumerate(self.descriptors)}
        self._matrix = None

    def export_all(self) -> str:
        """Serialize every descriptor, in index order, to a JSON blob."""
        data = []
        for descriptor in self.descriptors:
            item = {
                'ownerId': descriptor.owner_id,
                'vector': descriptor.vector.tolist(),
                'capturedAt': descriptor.captured_at,
            }
            if descriptor.display_name is not None:
                item['displayName'] = descriptor.display_name
            data.append(item)
        return json.dumps(data)

    def import_all(self, blob: str) -> bool:
        """
        Upsert every descriptor from an exported blob.

        The whole payload is validated first; a malformed payload leaves the
        store untouched.

        Returns:
            True if the blob was imported, False if it was rejected
        """
        try:
            entries = self._parse_blob(blob)
        except StorageParseError as e:
            self.last_error = e
            logger.error(f"{e.reason}: failed to import face data: {e.detail}")
            return False

        for owner_id, vector, captured_at, display_name in entries:
            self.enroll(owner_id, vector, display_name, captured_at=captured_at)

        self.last_error = None
        logger.info(f"Imported {len(entries)} face descriptors")
        return True

    def _parse_blob(self, blob: str) -> List[Tuple[str, np.ndarray, int, Optional[str]]]:
        try:
            data = json.loads(blob)
        except (TypeError, ValueError) as e:
            raise StorageParseError(f"invalid JSON: {e}")

        if not isinstance(data, list):
            raise StorageParseError("expected a JSON array")

        entries = []
        dimension = self.dimension
        for position, item in enumerate(data):
            if not isinstance(item, dict):
                raise StorageParseError(f"entry {position} is not an object")

            owner_id = item.get('ownerId')
            if not isinstance(owner_id, str) or not owner_id:
                raise StorageParseError(f"entry {position} has no ownerId")

            raw_vector = item.get('vector')
            if (not isinstance(raw_vector, list) or not raw_vector
                    or not all(_is_number(v) for v in raw_vector)):
                raise StorageParseError(f"entry {position} has an invalid vector")
            try:
                vector = np.array(raw_vector, dtype=np.float64)
            except OverflowError:
                raise StorageParseError(f"entry {position} has out-of-range values")

            if dimension is None:
                dimension = len(raw_vector)
            elif len(raw_vector) != dimension:
                raise StorageParseError(
                    f"entry {position} has dimension {len(raw_vector)}, expected {dimension}")

            captured_at = item.get('capturedAt')
            if not _is_number(captured_at) or captured_at != int(captured_at):
                raise StorageParseError(f"entry {position} has an invalid capturedAt")

            display_name = item.get('displayName')
            if display_name is not None and not isinstance(display_name, str):
                raise StorageParseError(f"entry {position} has an invalid displayName")

            entries.append((owner_id, vector, int(captured_at), display_name))

        return entries

    def save(self) -> bool:
        """Write the export blob to the attached database."""
        if self.database is None:
            logger.warning("No database attached, descriptors not saved")
            return False

        self.database.save_face_data(self.export_all())
        logger.info(f"Saved {len(self.descriptors)} face descriptors")
        return True

    def load(self) -> bool:
        """Import the export blob from the attached database, if any."""
        if self.database is None:
            return False

        blob = self.database.get_face_data()
        if blob is None:
            logger.info("No stored face data found, starting fresh")
            return False

        return self.import_all(blob)

    def get_statistics(self) -> Dict[str, Any]:
        """Get store statistics."""
        return {
            'total_descriptors': len(self.descriptors),
            'dimension': self.dimension,
            'owners': [d.owner_id for d in self.descriptors],
        }


def _is_number(value) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and not (isinstance(value, float) and not math.isfinite(value)))
