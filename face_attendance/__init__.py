"""
Face Attendance System

Enrolls people by a single face descriptor, identifies live captures against
the enrolled set and records attendance against time-bounded sessions.
"""

__version__ = "1.0.0"
__author__ = "Face Attendance System Team"

from .descriptor_store import DescriptorStore
from .matcher import Matcher, MatchResult
from .enrollment import EnrollmentWorkflow
from .attendance import SessionWorkflow
from .persistence import AttendanceDatabase, FileKeyValueStore, MemoryKeyValueStore
from .system import AttendanceSystem

__all__ = [
    "DescriptorStore",
    "Matcher",
    "MatchResult",
    "EnrollmentWorkflow",
    "SessionWorkflow",
    "AttendanceDatabase",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "AttendanceSystem",
]
