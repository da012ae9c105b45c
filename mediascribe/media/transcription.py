"""
Speech-to-text through the OpenAI audio transcription API.

One call per segment, no retries, no context carried between segments.
The OpenAI client is created lazily on first use so that a missing key only
matters when a transcription is actually attempted.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import openai

from ..errors import (
    ConfigurationError,
    PayloadTooLargeError,
    TranscriptionServiceError,
    TranscriptionTimeoutError,
)
from .utils import PathLike, format_size_mb

logger = logging.getLogger(__name__)

# Largest upload the transcription endpoint accepts
REMOTE_SIZE_CEILING = 25 * 1024 * 1024


class WhisperTranscriber:
    """
    Transcribe audio files with the OpenAI Whisper API.

    A pre-built client can be injected (tests, custom transports); otherwise
    one is created from ``api_key`` when first needed.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "whisper-1",
        timeout: float = 600,
        size_ceiling: int = REMOTE_SIZE_CEILING,
        base_url: Optional[str] = None,
        client: Any = None,
    ):
        """
        Args:
            api_key: OpenAI API key
            model: Transcription model name
            timeout: Seconds before a single call is abandoned
            size_ceiling: Largest segment size accepted, in bytes
            base_url: Optional alternative API endpoint
            client: Ready-made client exposing ``audio.transcriptions.create``
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.size_ceiling = size_ceiling
        self.base_url = base_url or None
        self.client = client

    def _load_client(self) -> Any:
        """Create the OpenAI client on first use."""
        if self.client is not None:
            return self.client

        if not self.api_key:
            raise ConfigurationError("OpenAI API key not configured (set OPENAI_API_KEY)")

        self.client = openai.OpenAI(
            api_key=self.api_key, base_url=self.base_url, timeout=self.timeout, max_retries=0
        )
        logger.info(f"OpenAI client loaded (model: {self.model})")
        return self.client

    def transcribe(self, segment_path: PathLike, label: str = "file") -> str:
        """
        Transcribe one audio segment.

        Args:
            segment_path: Audio file no larger than the size ceiling
            label: Name used in log lines (e.g. ``"segment 2/3"``)

        Returns:
            Recognized text for this segment only

        Raises:
            PayloadTooLargeError: If the file exceeds the ceiling (no call is made)
            ConfigurationError: If no API key is available
            TranscriptionTimeoutError: If the call times out
            TranscriptionServiceError: For any other remote or network failure
        """
        segment_path = Path(segment_path)
        size = segment_path.stat().st_size

        if size > self.size_ceiling:
            raise PayloadTooLargeError(
                f"File {segment_path.name} is {format_size_mb(size)}, exceeds "
                f"{format_size_mb(self.size_ceiling)} transcription limit",
                size_bytes=size,
                limit_bytes=self.size_ceiling,
            )

        client = self._load_client()
        logger.info(f"Transcribing {label}: {segment_path.name} ({format_size_mb(size)})")

        try:
            with open(segment_path, "rb") as audio_file:
                response = client.audio.transcriptions.create(
                    model=self.model,
                    file=audio_file,
                    response_format="json",
                    timeout=self.timeout,
                )
        except openai.APITimeoutError as e:
            raise TranscriptionTimeoutError(f"Transcription of {segment_path.name} timed out: {e}")
        except openai.APIStatusError as e:
            raise TranscriptionServiceError(
                f"Transcription service returned {e.status_code} for {segment_path.name}: {e.message}",
                status=e.status_code,
                payload=e.body,
            )
        except openai.OpenAIError as e:
            raise TranscriptionServiceError(f"Transcription of {segment_path.name} failed: {e}")

        logger.info(f"Transcription completed for {label}")
        return _response_text(response)


def _response_text(response: Any) -> str:
    """Pull the text out of a transcription response object, dict or string."""
    if isinstance(response, str):
        return response
    if isinstance(response, dict):
        return str(response.get("text", ""))
    text = getattr(response, "text", None)
    if isinstance(text, str):
        return text
    raise TranscriptionServiceError(f"Unexpected transcription response: {response!r}")
