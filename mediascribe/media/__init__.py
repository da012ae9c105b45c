"""
Media conversion, segmentation and transcription.

Main components:
- FFmpegTool: converts video to compact mono audio, probes durations, cuts ranges
- Segmenter: splits audio that exceeds a size ceiling into ordered segments
- WhisperTranscriber: sends one segment at a time to the OpenAI transcription API
- Utility functions: media kind detection, timestamps, best-effort cleanup

Example usage:
    from mediascribe.media import FFmpegTool, Segmenter, WhisperTranscriber

    tool = FFmpegTool()
    segments = Segmenter(tool).segment("talk.mp3", 20 * 1024 * 1024, "uploads/segments_1")
    transcriber = WhisperTranscriber(api_key="sk-...")
    texts = [transcriber.transcribe(path) for path in segments]
"""

from .ffmpeg import FFmpegTool
from .segmenter import SegmentSet, Segmenter, plan_ranges
from .transcription import REMOTE_SIZE_CEILING, WhisperTranscriber
from .utils import (
    cleanup_paths,
    filename_timestamp,
    format_size_mb,
    is_audio,
    iso_timestamp,
    unique_suffix,
)

__all__ = [
    "FFmpegTool",
    "Segmenter",
    "SegmentSet",
    "plan_ranges",
    "WhisperTranscriber",
    "REMOTE_SIZE_CEILING",
    "cleanup_paths",
    "filename_timestamp",
    "format_size_mb",
    "is_audio",
    "iso_timestamp",
    "unique_suffix",
]
