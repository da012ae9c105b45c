"""
Filesystem-based storage for uploads and finished transcripts.

Everything lives in one shared working directory:
- Uploaded media, named ``video_<ms>_<sanitized original name>``
- Persisted transcripts, named ``<base>_transcription_<timestamp>.txt``
- Temporary artifacts created by the pipeline (removed after each job)

Every name coming from a client is resolved through ``resolve`` so nothing
outside the working directory can be read or written.
"""

import logging
import mimetypes
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from werkzeug.utils import secure_filename

from ..errors import AccessDenied, PersistenceError
from ..media.utils import AUDIO_EXTENSIONS, VIDEO_EXTENSIONS, filename_timestamp, iso_timestamp
from .models import JobResult, StoredFile

logger = logging.getLogger(__name__)

LISTED_EXTENSIONS = re.compile(r"\.(mp4|avi|mov|wmv|mkv|webm|mp3|wav|m4a|aac|txt)$", re.IGNORECASE)
TRANSCRIPTION_MARKER = "_transcription_"
MEDIA_EXTENSIONS = AUDIO_EXTENSIONS | VIDEO_EXTENSIONS


class ResultStore:
    """Manages the working directory shared by uploads, temp files and transcripts."""

    def __init__(self, working_dir="uploads"):
        """
        Initialize the store.

        Args:
            working_dir: Directory holding uploads and transcripts (created if missing)
        """
        self.working_dir = Path(working_dir)
        self.working_dir.mkdir(parents=True, exist_ok=True)
        self.root = self.working_dir.resolve()

    def resolve(self, name: str) -> Path:
        """
        Resolve a client-supplied name inside the working directory.

        Raises:
            AccessDenied: If the canonical path lies outside the working directory
        """
        if not name or "\x00" in name:
            raise AccessDenied("Access denied")

        candidate = (self.root / name).resolve()
        if candidate == self.root or self.root not in candidate.parents:
            logger.warning(f"Rejected path outside working directory: {name!r}")
            raise AccessDenied("Access denied")
        return candidate

    def exists(self, name: str) -> bool:
        return self.resolve(name).is_file()

    def list_files(self) -> List[StoredFile]:
        """
        List media and transcript files, newest first.

        Returns:
            StoredFile entries sorted by modification time (descending)
        """
        files = []
        for entry in self.working_dir.iterdir():
            if not entry.is_file() or not LISTED_EXTENSIONS.search(entry.name):
                continue
            stats = entry.stat()
            files.append(
                (
                    stats.st_mtime,
                    StoredFile(
                        name=entry.name,
                        size=stats.st_size,
                        modified=iso_timestamp(datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)),
                        is_transcription=TRANSCRIPTION_MARKER in entry.name,
                    ),
                )
            )

        files.sort(key=lambda item: item[0], reverse=True)
        return [stored for _, stored in files]

    def read(self, name: str) -> bytes:
        """Read a stored file; raises FileNotFoundError when it is absent."""
        path = self.resolve(name)
        if not path.is_file():
            raise FileNotFoundError(name)
        return path.read_bytes()

    def save(self, name: str, content, exclusive: bool = False) -> Path:
        """
        Write a file into the working directory.

        Args:
            name: Target file name
            content: ``str`` (written as UTF-8) or ``bytes``
            exclusive: Fail with FileExistsError instead of overwriting

        Raises:
            PersistenceError: If the write fails
        """
        path = self.resolve(name)
        data = content.encode("utf-8") if isinstance(content, str) else content
        mode = "xb" if exclusive else "wb"
        try:
            with open(path, mode) as f:
                f.write(data)
        except FileExistsError:
            raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {name}: {e}")
        return path

    def upload_path(self, original_filename: str, mimetype: Optional[str] = None) -> Path:
        """
        Path for a new upload: ``video_<ms>_<sanitized name>``.

        A name without a media extension gets one guessed from ``mimetype``
        so ffmpeg and the transcription API can recognize the container.
        """
        sanitized = secure_filename(original_filename) or "upload"
        if Path(sanitized).suffix.lower() not in MEDIA_EXTENSIONS and mimetype:
            extension = mimetypes.guess_extension(mimetype.split(";")[0].strip())
            if extension:
                sanitized += extension
        return self.resolve(f"video_{int(time.time() * 1000)}_{sanitized}")

    def temp_path(self, name: str) -> Path:
        """Path for a temporary artifact in the working directory."""
        return self.resolve(name)

    def save_transcription(
        self, transcription: str, original_filename: str, job_id: str, generated_at: Optional[datetime] = None
    ) -> JobResult:
        """
        Persist a final transcript.

        Args:
            transcription: Joined transcript text
            original_filename: Name the user uploaded (used for the header and base name)
            job_id: Job identifier
            generated_at: Generation time (defaults to now)

        Returns:
            JobResult describing the written artifact

        Raises:
            PersistenceError: If the file cannot be written
        """
        generated_at = generated_at or datetime.now(timezone.utc)
        base_name = Path(os.path.basename(original_filename)).stem or "transcript"
        stamp = filename_timestamp(generated_at)
        generated = iso_timestamp(generated_at)
        content = f"Transcription for: {original_filename}\nGenerated: {generated}\n\n{transcription}"

        attempt = 0
        while True:
            suffix = f"_{attempt}" if attempt else ""
            filename = f"{base_name}{TRANSCRIPTION_MARKER}{stamp}{suffix}.txt"
            try:
                path = self.save(filename, content, exclusive=True)
                break
            except FileExistsError:
                attempt += 1
            except AccessDenied as e:
                raise PersistenceError(f"Invalid transcript name {filename!r}: {e}")

        logger.info(f"Transcription saved to: {path}")
        return JobResult(
            job_id=job_id,
            original_filename=original_filename,
            transcription_file=filename,
            transcription=transcription,
            generated_at=generated,
        )
