from types import SimpleNamespace

import httpx
import openai
import pytest
from conftest import MIB, make_file

from mediascribe.errors import (
    ConfigurationError,
    PayloadTooLargeError,
    TranscriptionServiceError,
    TranscriptionTimeoutError,
)
from mediascribe.media import REMOTE_SIZE_CEILING, WhisperTranscriber

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")


class FakeTranscriptions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def fake_client(result=None, error=None):
    transcriptions = FakeTranscriptions(result=result, error=error)
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions)), transcriptions


class TestPrecondition:
    def test_oversized_segment_never_reaches_the_client(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", REMOTE_SIZE_CEILING + 1)
        client, transcriptions = fake_client(result=SimpleNamespace(text="unused"))

        with pytest.raises(PayloadTooLargeError) as excinfo:
            WhisperTranscriber(client=client).transcribe(segment)

        assert transcriptions.calls == []
        assert excinfo.value.size_bytes == REMOTE_SIZE_CEILING + 1
        assert excinfo.value.limit_bytes == REMOTE_SIZE_CEILING

    def test_segment_at_ceiling_is_sent(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 25 * MIB)
        client, transcriptions = fake_client(result=SimpleNamespace(text="hello"))

        assert WhisperTranscriber(client=client).transcribe(segment) == "hello"
        assert len(transcriptions.calls) == 1

    def test_missing_key_without_client_is_a_configuration_error(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        with pytest.raises(ConfigurationError):
            WhisperTranscriber(api_key="").transcribe(segment)


class TestTranscribe:
    def test_sends_model_and_timeout(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        client, transcriptions = fake_client(result=SimpleNamespace(text="Good morning."))

        text = WhisperTranscriber(client=client, model="whisper-1", timeout=42).transcribe(segment)

        assert text == "Good morning."
        call = transcriptions.calls[0]
        assert call["model"] == "whisper-1"
        assert call["response_format"] == "json"
        assert call["timeout"] == 42
        assert str(call["file"].name) == str(segment)

    def test_accepts_dict_responses(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        client, _ = fake_client(result={"text": "from dict"})
        assert WhisperTranscriber(client=client).transcribe(segment) == "from dict"

    def test_client_is_built_lazily_from_key(self, tmp_path, monkeypatch):
        built = {}

        def fake_openai(**kwargs):
            built.update(kwargs)
            return fake_client(result=SimpleNamespace(text="lazy"))[0]

        monkeypatch.setattr(openai, "OpenAI", fake_openai)
        transcriber = WhisperTranscriber(api_key="sk-test", timeout=30)
        assert built == {}

        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        assert transcriber.transcribe(segment) == "lazy"
        assert built["api_key"] == "sk-test"
        assert built["max_retries"] == 0


class TestErrors:
    def test_timeout(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        client, _ = fake_client(error=openai.APITimeoutError(request=REQUEST))
        with pytest.raises(TranscriptionTimeoutError):
            WhisperTranscriber(client=client).transcribe(segment)

    def test_status_error_carries_status_and_payload(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        body = {"error": {"message": "Invalid file format."}}
        error = openai.APIStatusError(
            "Invalid file format.", response=httpx.Response(400, request=REQUEST), body=body
        )
        client, _ = fake_client(error=error)

        with pytest.raises(TranscriptionServiceError) as excinfo:
            WhisperTranscriber(client=client).transcribe(segment)

        assert excinfo.value.status == 400
        assert excinfo.value.payload == body

    def test_connection_error(self, tmp_path):
        segment = make_file(tmp_path / "segment_000.mp3", 1024)
        client, _ = fake_client(error=openai.APIConnectionError(request=REQUEST))
        with pytest.raises(TranscriptionServiceError) as excinfo:
            WhisperTranscriber(client=client).transcribe(segment)
        assert excinfo.value.status is None
