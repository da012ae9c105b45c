"""
Shared fixtures: temporary working directory, settings, and fakes standing in
for ffmpeg and the transcription service.
"""

from pathlib import Path

import pytest

from mediascribe.config import Settings
from mediascribe.errors import SegmentationError, TranscriptionServiceError
from mediascribe.server.processor import PipelineOrchestrator
from mediascribe.server.result_store import ResultStore

MIB = 1024 * 1024

_ENV_KEYS = [
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "ACCESS_PASSWORD",
    "TOKEN_SECRET",
    "AUTH_MODE",
    "PROGRESS_MODE",
    "UPLOAD_DIR",
    "MAX_UPLOAD_MB",
    "SEGMENT_CEILING_MB",
    "REMOTE_CEILING_MB",
    "ALLOWED_ORIGINS",
    "SECURITY_HEADERS",
    "PORT",
    "RATE_LIMIT_ENABLED",
    "RATE_LIMIT_WINDOW_MS",
    "RATE_LIMIT_MAX_REQUESTS",
]


def make_file(path: Path, size: int) -> Path:
    """Create a (sparse) file of exactly ``size`` bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


class FakeMediaTool:
    """Records calls and writes small files instead of running ffmpeg."""

    def __init__(self, duration: float = 300.0, converted_size: int = 1024, fail_on_range=None):
        self.duration = duration
        self.converted_size = converted_size
        self.fail_on_range = fail_on_range
        self.calls = []

    def convert_to_audio(self, source_path, output_path):
        self.calls.append(("convert", Path(source_path), Path(output_path)))
        return make_file(Path(output_path), self.converted_size)

    def probe_duration(self, audio_path):
        self.calls.append(("probe", Path(audio_path)))
        return self.duration

    def extract_range(self, source_path, output_path, start, duration=None):
        index = len([c for c in self.calls if c[0] == "extract"])
        self.calls.append(("extract", Path(output_path), start, duration))
        if self.fail_on_range is not None and index == self.fail_on_range:
            raise SegmentationError(f"ffmpeg failed on range {index}")
        return make_file(Path(output_path), 1024)

    def names(self):
        return [call[0] for call in self.calls]


class StubTranscriber:
    """Deterministic transcriber: segment N yields ``texts[N]``."""

    def __init__(self, texts=None, fail_at=None):
        self.texts = texts
        self.fail_at = fail_at
        self.calls = []

    def transcribe(self, segment_path, label="file"):
        index = len(self.calls)
        self.calls.append(Path(segment_path))
        if self.fail_at is not None and index == self.fail_at:
            raise TranscriptionServiceError("Connection reset by peer", status=None)
        if self.texts is None:
            return f"text of {Path(segment_path).name}"
        return self.texts[index]


class RecordingListener:
    def __init__(self):
        self.events = []

    def on_event(self, event):
        self.events.append(event)

    @property
    def stages(self):
        return [event.stage.value for event in self.events]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def workdir(tmp_path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture()
def settings_factory(workdir):
    def factory(**overrides):
        values = {
            "UPLOAD_DIR": str(workdir),
            "OPENAI_API_KEY": "sk-test",
            "ACCESS_PASSWORD": "open-sesame",
            "TOKEN_SECRET": "test-secret",
            "SEGMENT_CEILING_MB": "25",
        }
        values.update(overrides)
        return Settings.from_env(values)

    return factory


@pytest.fixture()
def settings(settings_factory) -> Settings:
    return settings_factory()


@pytest.fixture()
def store(workdir) -> ResultStore:
    return ResultStore(workdir)


@pytest.fixture()
def tool() -> FakeMediaTool:
    return FakeMediaTool()


@pytest.fixture()
def transcriber() -> StubTranscriber:
    return StubTranscriber()


@pytest.fixture()
def orchestrator(settings, store, tool, transcriber) -> PipelineOrchestrator:
    return PipelineOrchestrator(settings, store, tool=tool, transcriber=transcriber)
