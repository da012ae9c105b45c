"""
Data models for the transcription server.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import MediascribeError
from ..media.utils import AUDIO_EXTENSIONS, is_audio, iso_timestamp


class JobStage(Enum):
    """Processing stages for a job."""

    RECEIVED = "received"
    CONVERTING = "converting"
    SEGMENTING = "segmenting"
    TRANSCRIBING = "transcribing"
    JOINING = "joining"
    PERSISTING = "persisting"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStage.DONE, JobStage.FAILED)


@dataclass(frozen=True)
class SourceMediaHandle:
    """An input file handed to the pipeline by the upload/storage layer."""

    path: Path
    mime_or_extension_hint: str
    size_bytes: int

    @classmethod
    def from_path(cls, path, hint: Optional[str] = None) -> "SourceMediaHandle":
        path = Path(path)
        return cls(path=path, mime_or_extension_hint=hint or path.suffix, size_bytes=path.stat().st_size)

    @property
    def kind(self) -> str:
        """'audio' or 'video'."""
        return "audio" if is_audio(self.mime_or_extension_hint) else "video"

    @property
    def needs_conversion(self) -> bool:
        """Video always; audio too when its file name carries no known audio extension."""
        return self.kind == "video" or self.path.suffix.lower() not in AUDIO_EXTENSIONS


@dataclass
class JobResult:
    """Outcome of a successful job."""

    job_id: str
    original_filename: str
    transcription_file: str
    transcription: str
    generated_at: str
    segment_count: int = 1


@dataclass
class JobFailure:
    """Structured failure that replaces the success payload."""

    kind: str
    message: str
    status_code: int = 500
    status: Optional[int] = None
    payload: Any = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "JobFailure":
        if isinstance(error, MediascribeError):
            return cls(
                kind=error.kind,
                message=str(error),
                status_code=error.status_code,
                status=getattr(error, "status", None),
                payload=getattr(error, "payload", None),
            )
        return cls(kind="InternalError", message=str(error) or error.__class__.__name__)

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": "Transcription failed", "kind": self.kind, "details": self.message}
        if self.status is not None:
            data["remoteStatus"] = self.status
        return data


@dataclass
class StoredFile:
    """One file in the working directory listing."""

    name: str
    size: int
    modified: str
    is_transcription: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size,
            "modified": self.modified,
            "isTranscription": self.is_transcription,
        }


@dataclass
class ProgressEvent:
    """A stage transition or progress update for one job."""

    job_id: str
    stage: JobStage
    progress: float
    message: str = ""
    segment_index: Optional[int] = None
    segment_count: Optional[int] = None
    timestamp: str = field(default_factory=iso_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data
