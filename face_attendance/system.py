"""
Attendance System

Builds the process-wide services once (storage, descriptor store, matcher,
extractor) and hands out fresh workflow instances that share them.
"""

import logging
from typing import Any, Dict, Optional

from .attendance import SessionWorkflow
from .descriptor_store import DescriptorStore
from .enrollment import EnrollmentWorkflow
from .errors import ModelUnavailable
from .extractor import DescriptorExtractor, create_extractor
from .matcher import Matcher
from .persistence import AttendanceDatabase, KeyValueStore, create_key_value_store

logger = logging.getLogger(__name__)


class AttendanceSystem:
    """Service container for one process."""

    def __init__(self, config: Dict[str, Any],
                 store: Optional[KeyValueStore] = None,
                 extractor: Optional[DescriptorExtractor] = None):
        """
        Initialize the attendance system.

        Args:
            config: Configuration dictionary
            store: Key/value backend (defaults to the one named in config)
            extractor: Descriptor extractor (defaults to the configured model)
        """
        self.config = config
        self.database = AttendanceDatabase(store or create_key_value_store(config))

        # The in-memory index is a cache of the persisted blob
        self.descriptor_store = DescriptorStore(config, self.database)
        self.descriptor_store.load()

        self.matcher = Matcher(config, self.descriptor_store)
        self.extractor = extractor or create_extractor(config)
        self.model_error: Optional[ModelUnavailable] = None

        logger.info(f"Attendance system ready with {len(self.descriptor_store)} enrolled descriptor(s)")

    async def initialize(self) -> bool:
        """
        Load the extraction models.

        A failure is logged once here; workflows then report
        ModelUnavailable for every capture.
        """
        try:
            await self.extractor.initialize()
        except ModelUnavailable as e:
            self.model_error = e
            logger.error(f"Face recognition unavailable: {e}")
            return False

        self.model_error = None
        return True

    def new_enrollment(self) -> EnrollmentWorkflow:
        return EnrollmentWorkflow(self.extractor, self.descriptor_store, self.database)

    def new_session(self) -> SessionWorkflow:
        return SessionWorkflow(self.config, self.extractor, self.matcher, self.database)

    def restore_all(self, data) -> None:
        """
        Replace all stored data with an ``export_all_data`` document and
        reload the descriptor index from it.

        Raises:
            StorageParseError: if the document or its face data is malformed;
                stored data is left untouched
        """
        self.database.validate_export(data)

        faces = data.get('faces')
        if faces is not None:
            scratch = DescriptorStore(self.config)
            if not scratch.import_all(faces):
                raise scratch.last_error

        self.database.clear_all()
        self.database.import_all_data(data)
        self.descriptor_store.clear()
        self.descriptor_store.load()
        logger.info(f"Restored all data; {len(self.descriptor_store)} descriptor(s) enrolled")

    def remove_identity(self, identity_id: str) -> bool:
        """Delete an identity and its descriptor."""
        removed_identity = self.database.delete_identity(identity_id)
        removed_descriptor = self.descriptor_store.remove(identity_id)
        if removed_descriptor:
            self.descriptor_store.save()
        return removed_identity or removed_descriptor
