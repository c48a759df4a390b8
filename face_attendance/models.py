"""
Data Models

Entities persisted by the attendance system. Timestamps are integer
milliseconds since the epoch.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

STATUS_PRESENT = 'present'
STATUS_ABSENT = 'absent'
STATUS_LATE = 'late'
ATTENDANCE_STATUSES = (STATUS_PRESENT, STATUS_ABSENT, STATUS_LATE)


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Identity:
    """An enrolled person. ``id`` is assigned by the operator."""

    id: str
    display_name: str
    roll_number: str
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'roll_number': self.roll_number,
            'email': self.email,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Identity':
        return cls(
            id=str(data['id']),
            display_name=str(data['display_name']),
            roll_number=str(data['roll_number']),
            email=data.get('email'),
        )


@dataclass
class FaceDescriptor:
    """The single feature vector held for one identity."""

    owner_id: str
    vector: np.ndarray
    captured_at: int = field(default_factory=now_ms)
    display_name: Optional[str] = None

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass
class Session:
    """A bounded period during which captures are attributed to one class."""

    id: str
    label: str
    date: str
    started_at: int
    ended_at: Optional[int] = None
    subject: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'date': self.date,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
            'subject': self.subject,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        ended_at = data.get('ended_at')
        return cls(
            id=str(data['id']),
            label=str(data['label']),
            date=str(data['date']),
            started_at=int(data['started_at']),
            ended_at=int(ended_at) if ended_at is not None else None,
            subject=data.get('subject'),
        )


@dataclass(frozen=True)
class AttendanceRecord:
    """One accepted capture. Records are never mutated after creation."""

    id: str
    session_id: str
    subject_id: str
    observed_at: int
    confidence: float
    status: str = STATUS_PRESENT

    def __post_init__(self):
        if self.status not in ATTENDANCE_STATUSES:
            raise ValueError(f"Unknown attendance status: {self.status}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence out of range: {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'session_id': self.session_id,
            'subject_id': self.subject_id,
            'observed_at': self.observed_at,
            'confidence': self.confidence,
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceRecord':
        return cls(
            id=str(data['id']),
            session_id=str(data['session_id']),
            subject_id=str(data['subject_id']),
            observed_at=int(data['observed_at']),
            confidence=float(data['confidence']),
            status=data.get('status', STATUS_PRESENT),
        )
