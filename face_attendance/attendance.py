"""
Session Attendance Workflow

Starts a session, identifies each delivered capture with the matcher and
appends an attendance record for every accepted match. Repeated matches of
the same person within a session each produce their own record.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .capture import CancellationToken, CaptureSource
from .errors import FaceAttendanceError, NoMatch, ValidationError, WorkflowStateError
from .extractor import DescriptorExtractor
from .matcher import Matcher
from .models import STATUS_PRESENT, AttendanceRecord, Session, now_ms
from .persistence import AttendanceDatabase
from .workflow import Workflow

logger = logging.getLogger(__name__)

SESSION_SETUP = 'session_setup'
CAPTURING = 'capturing'
SUMMARY = 'summary'


class SessionWorkflow(Workflow):
    """session_setup -> capturing -> summary"""

    def __init__(self, config: Dict[str, Any], extractor: DescriptorExtractor,
                 matcher: Matcher, database: AttendanceDatabase,
                 clock: Callable[[], int] = now_ms):
        """
        Initialize session workflow.

        Args:
            config: Configuration dictionary with attendance settings
            extractor: Descriptor extractor (must be initialized before capturing)
            matcher: Matcher over the enrolled descriptors
            database: Attendance database for sessions and records
            clock: Returns the current time in milliseconds
        """
        super().__init__(extractor)
        self.attendance_config = config.get('attendance', {})
        self.single_face_only = self.attendance_config.get('single_face_only', True)
        self.frame_interval = self.attendance_config.get('frame_interval', 0.5)

        self.matcher = matcher
        self.database = database
        self.clock = clock

        self.state = SESSION_SETUP
        self.session: Optional[Session] = None
        self.records: List[AttendanceRecord] = []

    def start_session(self, session_id: str, label: str,
                      subject: Optional[str] = None) -> Dict[str, Any]:
        """Create and persist the session, then start accepting captures."""
        if self.state != SESSION_SETUP:
            return self._failure(WorkflowStateError(f"Cannot start a session while {self.state}"))

        session_id = (session_id or '').strip()
        label = (label or '').strip()
        if not session_id or not label:
            return self._failure(ValidationError("Session id and label are required"))

        if self.database.get_session(session_id) is not None:
            return self._failure(ValidationError(
                f"Session id {session_id} already used",
                message="This session id has already been used. Choose a new one."))

        started_at = self.clock()
        self.session = Session(
            id=session_id,
            label=label,
            date=date.fromtimestamp(started_at / 1000).isoformat(),
            started_at=started_at,
            subject=subject,
        )
        self.database.save_session(self.session)
        self.records = []
        self.state = CAPTURING

        logger.info(f"Session {session_id} ({label}) started")
        return self._success(f"Session {label} started.", session=self.session)

    async def process_capture(self, frame: np.ndarray,
                              token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        Identify one capture and record attendance on a match.

        A capture with no match writes nothing.
        """
        if self.state != CAPTURING:
            return self._failure(WorkflowStateError(f"Cannot capture while {self.state}"))

        try:
            detection = await self._extract_single(
                frame, token, pick_largest=not self.single_face_only)
            match = self.matcher.match(detection.vector)
        except FaceAttendanceError as e:
            logger.debug(f"Capture in session {self.session.id} failed: {e.reason}")
            return self._failure(e, marked=len(self.records))

        if match is None:
            return self._failure(NoMatch(), marked=len(self.records))

        observed_at = self.clock()
        record = AttendanceRecord(
            id=self.database.next_attendance_id(observed_at),
            session_id=self.session.id,
            subject_id=match.owner_id,
            observed_at=observed_at,
            confidence=min(1.0, max(0.0, match.confidence)),
            status=STATUS_PRESENT,
        )
        self.database.save_attendance(record)
        self.records.append(record)

        identity = self.database.get_identity(match.owner_id)
        display_name = identity.display_name if identity else match.display_name

        logger.info(f"Marked {match.owner_id} present in session {self.session.id} "
                    f"(confidence {record.confidence:.3f})")
        return self._success(f"{display_name or match.owner_id} marked present.",
                             record=record,
                             display_name=display_name,
                             confidence=record.confidence,
                             marked=len(self.records))

    async def run(self, source: CaptureSource, max_frames: Optional[int] = None,
                  on_result: Optional[Callable[[Dict[str, Any]], None]] = None) -> int:
        """
        Capture frames from a source until it is stopped, runs dry, the
        session ends or ``max_frames`` have been processed.

        The source is always stopped on exit.

        Returns:
            Number of frames processed
        """
        if self.state != CAPTURING:
            raise WorkflowStateError(f"Cannot run capture loop while {self.state}")

        stream = source.start()
        token = source.token
        processed = 0

        try:
            while self.state == CAPTURING and not token.cancelled:
                if max_frames is not None and processed >= max_frames:
                    break

                frame = source.capture_frame(stream)
                if frame is None:
                    break

                result = await self.process_capture(frame, token)
                processed += 1
                if on_result is not None:
                    on_result(result)

                await asyncio.sleep(self.frame_interval)
        finally:
            source.stop()

        logger.info(f"Capture loop finished after {processed} frame(s)")
        return processed

    def end_session(self) -> Dict[str, Any]:
        """Close the session; the workflow cannot be restarted afterwards."""
        if self.state != CAPTURING:
            return self._failure(WorkflowStateError(f"Cannot end a session while {self.state}"))

        self._invalidate_pending()
        self.session.ended_at = self.clock()
        self.database.save_session(self.session)
        self.state = SUMMARY

        logger.info(f"Session {self.session.id} ended with {len(self.records)} record(s)")
        return self._success("Session ended.", summary=self.summary())

    def summary(self) -> Dict[str, Any]:
        """Running tally of the records written in this session."""
        subjects = []
        for record in self.records:
            if record.subject_id not in subjects:
                subjects.append(record.subject_id)

        return {
            'session': self.session,
            'total_records': len(self.records),
            'unique_subjects': subjects,
            'records': list(self.records),
        }
