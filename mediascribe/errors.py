"""
Error taxonomy for the media-to-text pipeline.

Every failure a job can end in is one of these classes. Each carries a short
``kind`` used in API failure payloads and the HTTP status the server answers
with.
"""

from typing import Any, Optional


class MediascribeError(Exception):
    """Base class for all pipeline failures."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.kind

    def __str__(self) -> str:
        return self.message


class ConfigurationError(MediascribeError):
    """A required setting is missing or invalid."""

    kind = "ConfigurationError"


class ConversionError(MediascribeError):
    """Audio extraction from a video container failed."""

    kind = "ConversionError"


class ProbeError(MediascribeError):
    """The duration of an audio file could not be determined."""

    kind = "ProbeError"


class SegmentationError(MediascribeError):
    """Splitting an audio file into segments failed."""

    kind = "SegmentationError"


class PayloadTooLargeError(MediascribeError):
    """A segment exceeds the remote per-call size ceiling."""

    kind = "PayloadTooLargeError"
    status_code = 413

    def __init__(self, message: str = "", size_bytes: int = 0, limit_bytes: int = 0):
        super().__init__(message)
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class TranscriptionServiceError(MediascribeError):
    """The remote transcription service rejected the request or was unreachable."""

    kind = "TranscriptionServiceError"
    status_code = 502

    def __init__(self, message: str = "", status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class TranscriptionTimeoutError(MediascribeError):
    """The remote transcription call did not finish in time."""

    kind = "TranscriptionTimeoutError"
    status_code = 504


class AccessDenied(MediascribeError):
    """A requested name resolves outside the working directory."""

    kind = "AccessDenied"
    status_code = 403


class PersistenceError(MediascribeError):
    """The transcript could not be written to disk."""

    kind = "PersistenceError"
