"""
Error Types

Failures raised by the descriptor engine, the persistence layer and the
capture/extraction adapters. Workflows catch these and turn them into
result dictionaries carrying ``reason`` and an operator-facing ``message``.
"""

from typing import Optional


class FaceAttendanceError(Exception):
    """Base class for all face attendance errors."""

    default_message = "Unexpected error. Please try again."

    def __init__(self, detail: Optional[str] = None, message: Optional[str] = None):
        self.detail = detail
        self.message = message or self.default_message
        super().__init__(detail or self.message)

    @property
    def reason(self) -> str:
        return type(self).__name__


class ValidationError(FaceAttendanceError):
    default_message = "Please fill in all required fields."


class NoFaceDetected(FaceAttendanceError):
    default_message = "No face detected. Please try again."


class MultipleFacesDetected(FaceAttendanceError):
    default_message = "More than one face detected. Only one person should be in frame."


class DimensionMismatch(FaceAttendanceError):
    default_message = "Face data does not match the enrolled descriptors."

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Descriptor dimension mismatch: expected {expected}, got {actual}")


class InvalidDescriptor(FaceAttendanceError):
    default_message = "Face data could not be processed."


class ModelUnavailable(FaceAttendanceError):
    default_message = "Face recognition models failed to load."


class StorageParseError(FaceAttendanceError):
    default_message = "Stored data is corrupted and was ignored."


class WorkflowStateError(FaceAttendanceError):
    default_message = "This step is not available right now."


class CaptureError(FaceAttendanceError):
    default_message = "Camera is not available."


class StaleResult(FaceAttendanceError):
    default_message = "Capture was cancelled."


class NoMatch(FaceAttendanceError):
    default_message = "Face not recognized."
