"""
Size-driven audio segmentation.

An audio file larger than the ceiling is cut into ``ceil(size / ceiling)``
consecutive time ranges of equal length (the last one runs to the end of the
stream), using stream copy so no re-compression happens.
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import ProbeError, SegmentationError
from .ffmpeg import FFmpegTool
from .utils import PathLike, format_size_mb

logger = logging.getLogger(__name__)

SEGMENT_NAME = "segment_{index:03d}{suffix}"

# Used when the source has no extension; ffmpeg picks the muxer from it
DEFAULT_SEGMENT_SUFFIX = ".mp3"

# Below this, whole-second boundaries would produce empty segments
MIN_SEGMENT_SECONDS = 1.0


@dataclass
class SegmentSet:
    """Ordered segments covering one audio file, plus where they live."""

    paths: List[Path]
    ranges: List[Tuple[float, Optional[float]]] = field(default_factory=list)
    directory: Optional[Path] = None
    total_duration: Optional[float] = None

    @property
    def is_split(self) -> bool:
        return self.directory is not None

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self):
        return iter(self.paths)


def plan_ranges(total_duration: float, segment_count: int) -> List[Tuple[float, Optional[float]]]:
    """
    Compute ``(start, end)`` ranges that partition ``[0, total_duration)``.

    Boundaries fall on whole seconds (``floor(total / count)``). When that
    would be shorter than ``MIN_SEGMENT_SECONDS`` the exact fractional split is
    used instead. The last range has ``end=None`` meaning end of stream.
    """
    if segment_count < 1:
        raise SegmentationError(f"Invalid segment count {segment_count}")
    if total_duration <= 0:
        raise SegmentationError("Cannot split audio with unknown or zero duration")

    step = float(math.floor(total_duration / segment_count))
    if step < MIN_SEGMENT_SECONDS:
        step = total_duration / segment_count

    ranges: List[Tuple[float, Optional[float]]] = []
    for i in range(segment_count):
        start = i * step
        end = None if i == segment_count - 1 else (i + 1) * step
        ranges.append((start, end))
    return ranges


class Segmenter:
    """Splits audio files that exceed a size ceiling."""

    def __init__(self, tool: FFmpegTool):
        self.tool = tool

    def segment(self, audio_path: PathLike, size_ceiling_bytes: int, output_dir: PathLike) -> SegmentSet:
        """
        Split ``audio_path`` so each piece stays under ``size_ceiling_bytes``.

        Args:
            audio_path: Audio file to split
            size_ceiling_bytes: Largest acceptable file size
            output_dir: Directory to create for the segments (only when splitting)

        Returns:
            SegmentSet; for files within the ceiling it holds just ``audio_path``

        Raises:
            SegmentationError: If probing or any cut fails
        """
        audio_path = Path(audio_path)
        output_dir = Path(output_dir)
        file_size = audio_path.stat().st_size
        logger.info(f"Audio file size: {format_size_mb(file_size)}")

        if file_size <= size_ceiling_bytes:
            logger.info("File is small enough, no segmentation needed")
            return SegmentSet(paths=[audio_path])

        segment_count = math.ceil(file_size / size_ceiling_bytes)

        try:
            total_duration = self.tool.probe_duration(audio_path)
        except ProbeError as e:
            raise SegmentationError(f"Cannot split {audio_path.name}: {e}")

        ranges = plan_ranges(total_duration, segment_count)
        logger.info(
            f"Splitting {audio_path.name} ({total_duration:.1f}s) into {segment_count} segments "
            f"of ~{ranges[0][1] or total_duration:.1f}s"
        )

        output_dir.mkdir(parents=True, exist_ok=True)
        suffix = audio_path.suffix or DEFAULT_SEGMENT_SUFFIX
        paths = []
        for index, (start, end) in enumerate(ranges):
            segment_path = output_dir / SEGMENT_NAME.format(index=index, suffix=suffix)
            duration = None if end is None else end - start
            self.tool.extract_range(audio_path, segment_path, start, duration)
            paths.append(segment_path)

        logger.info(f"Created {len(paths)} segments: {[p.name for p in paths]}")
        return SegmentSet(paths=paths, ranges=ranges, directory=output_dir, total_duration=total_duration)
