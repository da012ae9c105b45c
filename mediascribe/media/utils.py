"""
Utility functions for media handling.

This module provides helper functions shared by the converter, the segmenter,
the pipeline and the server:

Key features:
- Audio/video kind detection from MIME type or extension
- Size and timestamp formatting for logs and artifact names
- Collision-resistant temporary names
- Best-effort, idempotent cleanup of temporary files and directories
"""

import logging
import os
import secrets
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg"}
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".wmv", ".mkv", ".webm"}

PathLike = Union[str, Path]


def is_audio(hint: Optional[str]) -> bool:
    """
    Decide whether a MIME type or filename refers to audio.

    Args:
        hint: MIME type (``audio/mpeg``) or a filename/extension (``talk.m4a``)

    Returns:
        True for audio, False for anything else (treated as video)
    """
    if not hint:
        return False
    hint = hint.strip().lower()
    if "/" in hint and not hint.startswith("."):
        if hint.startswith("audio/"):
            return True
        if hint.startswith("video/"):
            return False
    return os.path.splitext(hint)[1] in AUDIO_EXTENSIONS or hint in AUDIO_EXTENSIONS


def format_size_mb(size_bytes: int) -> str:
    """Format a byte count as whole megabytes, the way the logs report sizes."""
    return f"{round(size_bytes / 1024 / 1024)}MB"


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """
    Format a moment as UTC ISO 8601 with millisecond precision.

    Example: ``2025-03-01T14:05:09.123Z``
    """
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def filename_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO timestamp with ':' and '.' replaced by '-' so it is safe in filenames."""
    return iso_timestamp(moment).replace(":", "-").replace(".", "-")


def unique_suffix() -> str:
    """Millisecond clock plus a short random token, e.g. ``1712345678901_3fa2c1``."""
    return f"{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def cleanup_paths(paths: Iterable[Optional[PathLike]]) -> None:
    """
    Delete temporary files and directories, best effort.

    Missing paths are skipped, so calling this twice on the same set is safe.
    Errors are logged and never raised.

    Args:
        paths: Files or directories to remove; ``None`` entries are ignored
    """
    for path in paths:
        if path is None:
            continue
        path = Path(path)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                continue
            logger.info(f"Cleaned up: {path}")
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.error(f"Error cleaning up {path}: {e}")
