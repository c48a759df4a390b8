"""
Enrollment Workflow

Collects an identity's details, captures exactly one face and persists the
identity record followed by its descriptor.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np

from .capture import CancellationToken
from .descriptor_store import DescriptorStore
from .errors import FaceAttendanceError, ValidationError, WorkflowStateError
from .extractor import DescriptorExtractor
from .models import Identity
from .persistence import AttendanceDatabase
from .workflow import Workflow

logger = logging.getLogger(__name__)

COLLECTING_INFO = 'collecting_info'
AWAITING_CAPTURE = 'awaiting_capture'
COMPLETED = 'completed'


class EnrollmentWorkflow(Workflow):
    """collecting_info -> awaiting_capture -> completed"""

    def __init__(self, extractor: DescriptorExtractor, store: DescriptorStore,
                 database: AttendanceDatabase):
        super().__init__(extractor)
        self.store = store
        self.database = database
        self.state = COLLECTING_INFO
        self.identity: Optional[Identity] = None

    def submit_info(self, identity_id: str, display_name: str, roll_number: str,
                    email: Optional[str] = None) -> Dict[str, Any]:
        """
        Validate the operator's form and move on to face capture.

        Id, name and roll number are required; email is optional.
        """
        if self.state != COLLECTING_INFO:
            return self._failure(WorkflowStateError(f"Cannot submit details while {self.state}"))

        fields = {
            'id': (identity_id or '').strip(),
            'display_name': (display_name or '').strip(),
            'roll_number': (roll_number or '').strip(),
        }
        missing = [name for name, value in fields.items() if not value]
        if missing:
            error = ValidationError(f"Missing required fields: {', '.join(missing)}")
            logger.info(error.detail)
            return self._failure(error, missing=missing)

        self.identity = Identity(
            id=fields['id'],
            display_name=fields['display_name'],
            roll_number=fields['roll_number'],
            email=(email or '').strip() or None,
        )
        self.state = AWAITING_CAPTURE
        return self._success("Details accepted. Capture the face to finish enrollment.")

    async def capture(self, frame: np.ndarray,
                      token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        Extract a single descriptor from the frame and persist the enrollment.

        Failures leave the workflow in ``awaiting_capture`` so the operator
        can retry with another frame.
        """
        if self.state != AWAITING_CAPTURE:
            return self._failure(WorkflowStateError(f"Cannot capture while {self.state}"))

        identity = self.identity
        try:
            detection = await self._extract_single(frame, token)
            vector = self.store.check_dimension(detection.vector)
        except FaceAttendanceError as e:
            logger.info(f"Enrollment capture for {identity.id} failed: {e.reason}")
            return self._failure(e)

        # Two separate writes; a crash in between leaves the identity
        # without a descriptor
        self.database.save_identity(identity)
        self.store.enroll(identity.id, vector, identity.display_name)
        self.store.save()

        self.state = COMPLETED
        logger.info(f"Enrolled {identity.id} ({identity.display_name})")
        return self._success(f"{identity.display_name} has been successfully enrolled.",
                             identity=identity)

    def reset(self):
        """Discard the current enrollment and start over."""
        self._invalidate_pending()
        self.identity = None
        self.state = COLLECTING_INFO
