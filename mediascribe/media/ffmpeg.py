"""
FFmpeg/ffprobe wrapper used to convert, probe and cut media files.

All invocations are argument lists (no shell) with an explicit timeout.
"""

import logging
import math
import subprocess
from pathlib import Path
from typing import List, Optional, Type

from ..errors import ConversionError, MediascribeError, ProbeError, SegmentationError
from .utils import PathLike, format_size_mb

logger = logging.getLogger(__name__)

# Compact speech encoding: mono MP3, 22.05 kHz, 64 kbit/s
AUDIO_CODEC = "libmp3lame"
AUDIO_BITRATE = "64k"
AUDIO_CHANNELS = 1
AUDIO_SAMPLE_RATE = 22050


class FFmpegTool:
    """Runs ffmpeg and ffprobe for the pipeline."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        timeout: float = 3600,
        probe_timeout: float = 60,
    ):
        """
        Args:
            ffmpeg_bin: ffmpeg executable name or path
            ffprobe_bin: ffprobe executable name or path
            timeout: Upper bound in seconds for conversion and cutting
            probe_timeout: Upper bound in seconds for duration probes
        """
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    def _run(self, args: List[str], timeout: float, error_cls: Type[MediascribeError]) -> str:
        """Run a command and return its stdout, raising ``error_cls`` on any failure."""
        logger.info(f"Running command: {' '.join(args)}")
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError:
            raise error_cls(f"{args[0]} not found. Install ffmpeg and make sure it is on PATH.")
        except subprocess.TimeoutExpired:
            raise error_cls(f"{args[0]} timed out after {timeout} seconds")

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise error_cls(f"{args[0]} failed with code {result.returncode}: {stderr[-500:]}")

        if result.stderr:
            logger.debug(f"{args[0]} stderr: {result.stderr[-500:]}")
        return result.stdout or ""

    def convert_to_audio(self, source_path: PathLike, output_path: PathLike) -> Path:
        """
        Extract the audio track of a media file into compact mono MP3.

        Args:
            source_path: Input video (or audio) file; never modified
            output_path: Where to write the MP3

        Returns:
            Path of the written audio file

        Raises:
            ConversionError: If ffmpeg fails or produces no output
        """
        source_path = Path(source_path)
        output_path = Path(output_path)
        if source_path.resolve() == output_path.resolve():
            raise ConversionError("Output path must differ from the source path")

        self._run(
            [
                self.ffmpeg_bin,
                "-y",
                "-i",
                str(source_path),
                "-vn",
                "-acodec",
                AUDIO_CODEC,
                "-ab",
                AUDIO_BITRATE,
                "-ac",
                str(AUDIO_CHANNELS),
                "-ar",
                str(AUDIO_SAMPLE_RATE),
                str(output_path),
            ],
            self.timeout,
            ConversionError,
        )

        if not output_path.is_file() or output_path.stat().st_size == 0:
            raise ConversionError(f"Audio extraction produced no output for {source_path.name}")

        logger.info(f"Audio extracted to: {output_path} ({format_size_mb(output_path.stat().st_size)})")
        return output_path

    def probe_duration(self, audio_path: PathLike) -> float:
        """
        Get the total duration of a media file in seconds.

        Raises:
            ProbeError: If ffprobe fails or the duration is not a non-negative number
        """
        output = self._run(
            [
                self.ffprobe_bin,
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                str(audio_path),
            ],
            self.probe_timeout,
            ProbeError,
        )

        raw = output.strip().splitlines()[0].strip() if output.strip() else ""
        try:
            duration = float(raw)
        except ValueError:
            raise ProbeError(f"Could not parse duration {raw!r} for {Path(audio_path).name}")

        if math.isnan(duration) or math.isinf(duration) or duration < 0:
            raise ProbeError(f"Invalid duration {raw!r} for {Path(audio_path).name}")
        return duration

    def extract_range(
        self, source_path: PathLike, output_path: PathLike, start: float, duration: Optional[float] = None
    ) -> Path:
        """
        Copy a time range of an audio file without re-encoding.

        Args:
            source_path: Audio file to cut
            output_path: Where to write the segment
            start: Offset in seconds
            duration: Length in seconds, or None to run to the end of the stream

        Raises:
            SegmentationError: If ffmpeg fails or produces no output
        """
        output_path = Path(output_path)
        args = [self.ffmpeg_bin, "-y", "-ss", f"{start:.3f}", "-i", str(source_path)]
        if duration is not None:
            args += ["-t", f"{duration:.3f}"]
        args += ["-c", "copy", str(output_path)]

        self._run(args, self.timeout, SegmentationError)

        if not output_path.is_file():
            raise SegmentationError(f"Segment {output_path.name} was not created")
        return output_path
