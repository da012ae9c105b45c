import math

import pytest
from conftest import MIB, FakeMediaTool, make_file

from mediascribe.errors import ProbeError, SegmentationError
from mediascribe.media import Segmenter, cleanup_paths, plan_ranges


class TestNoSplit:
    def test_small_file_is_returned_unchanged(self, tmp_path):
        audio = make_file(tmp_path / "talk.mp3", 10 * MIB)
        tool = FakeMediaTool()
        out_dir = tmp_path / "segments"

        result = Segmenter(tool).segment(audio, 20 * MIB, out_dir)

        assert result.paths == [audio]
        assert not result.is_split
        assert not out_dir.exists()
        assert tool.calls == []

    def test_file_exactly_at_ceiling_is_not_split(self, tmp_path):
        audio = make_file(tmp_path / "talk.mp3", 20 * MIB)
        result = Segmenter(FakeMediaTool()).segment(audio, 20 * MIB, tmp_path / "segments")
        assert result.paths == [audio]


class TestSplit:
    @pytest.mark.parametrize("size_mib,ceiling_mib", [(60, 25), (21, 20), (100, 20), (41, 20)])
    def test_segment_count_is_ceiling_of_size_ratio(self, tmp_path, size_mib, ceiling_mib):
        audio = make_file(tmp_path / "long.mp3", size_mib * MIB)
        tool = FakeMediaTool(duration=3600.0)

        result = Segmenter(tool).segment(audio, ceiling_mib * MIB, tmp_path / "segments")

        assert len(result) == math.ceil(size_mib / ceiling_mib)
        assert all(path.exists() for path in result.paths)

    def test_ranges_partition_the_timeline(self, tmp_path):
        audio = make_file(tmp_path / "long.mp3", 60 * MIB)
        tool = FakeMediaTool(duration=301.5)

        result = Segmenter(tool).segment(audio, 25 * MIB, tmp_path / "segments")

        assert result.ranges == [(0.0, 100.0), (100.0, 200.0), (200.0, None)]
        extracts = [call for call in tool.calls if call[0] == "extract"]
        assert [(start, duration) for _, _, start, duration in extracts] == [
            (0.0, 100.0),
            (100.0, 100.0),
            (200.0, None),
        ]

    def test_segments_are_named_and_ordered_by_index(self, tmp_path):
        audio = make_file(tmp_path / "long.mp3", 60 * MIB)
        out_dir = tmp_path / "segments"

        result = Segmenter(FakeMediaTool()).segment(audio, 25 * MIB, out_dir)

        assert [p.name for p in result.paths] == ["segment_000.mp3", "segment_001.mp3", "segment_002.mp3"]
        assert result.directory == out_dir

    def test_source_without_extension_gets_default_suffix(self, tmp_path):
        audio = make_file(tmp_path / "video_1_recording", 60 * MIB)

        result = Segmenter(FakeMediaTool()).segment(audio, 25 * MIB, tmp_path / "segments")

        assert [p.name for p in result.paths] == ["segment_000.mp3", "segment_001.mp3", "segment_002.mp3"]

    def test_probe_runs_before_any_cut(self, tmp_path):
        audio = make_file(tmp_path / "long.mp3", 60 * MIB)
        tool = FakeMediaTool()
        Segmenter(tool).segment(audio, 25 * MIB, tmp_path / "segments")
        assert tool.names() == ["probe", "extract", "extract", "extract"]


class TestFailures:
    def test_probe_failure_is_fatal(self, tmp_path):
        class BrokenDuration(FakeMediaTool):
            def probe_duration(self, audio_path):
                raise ProbeError("no duration")

        audio = make_file(tmp_path / "long.mp3", 60 * MIB)
        with pytest.raises(SegmentationError):
            Segmenter(BrokenDuration()).segment(audio, 25 * MIB, tmp_path / "segments")

    def test_zero_duration_is_fatal(self, tmp_path):
        audio = make_file(tmp_path / "long.mp3", 60 * MIB)
        with pytest.raises(SegmentationError):
            Segmenter(FakeMediaTool(duration=0.0)).segment(audio, 25 * MIB, tmp_path / "segments")

    def test_failed_cut_leaves_directory_for_cleanup(self, tmp_path):
        audio = make_file(tmp_path / "long.mp3", 60 * MIB)
        out_dir = tmp_path / "segments"

        with pytest.raises(SegmentationError):
            Segmenter(FakeMediaTool(fail_on_range=1)).segment(audio, 25 * MIB, out_dir)

        assert (out_dir / "segment_000.mp3").exists()
        cleanup_paths([out_dir])
        assert not out_dir.exists()
        assert audio.exists()


class TestPlanRanges:
    def test_whole_second_boundaries(self):
        assert plan_ranges(10.0, 3) == [(0.0, 3.0), (3.0, 6.0), (6.0, None)]

    def test_short_audio_never_yields_empty_segments(self):
        ranges = plan_ranges(2.0, 3)
        starts = [start for start, _ in ranges]
        assert starts[0] == 0.0
        assert all(b > a for a, b in zip(starts, starts[1:]))
        assert starts[-1] < 2.0
        for (start, end), (next_start, _) in zip(ranges, ranges[1:]):
            assert end == next_start

    def test_single_segment_runs_to_end(self):
        assert plan_ranges(42.0, 1) == [(0.0, None)]

    def test_rejects_non_positive_duration(self):
        with pytest.raises(SegmentationError):
            plan_ranges(-1.0, 2)
