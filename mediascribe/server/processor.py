"""
Media-to-text pipeline.

This module sequences one job through its stages:
convert (video or unnamed audio) -> segment (if oversized) -> transcribe each segment in
order -> join -> persist -> cleanup. Any stage failure aborts the whole job;
cleanup of temporary artifacts runs either way.
"""

import logging
import time
import uuid
from typing import List, Optional

from ..config import Settings
from ..errors import MediascribeError
from ..media import FFmpegTool, Segmenter, WhisperTranscriber, cleanup_paths, format_size_mb, unique_suffix
from .models import JobResult, JobStage, ProgressEvent, SourceMediaHandle
from .progress import CompositeListener, LoggingProgressListener, ProgressListener
from .result_store import ResultStore

# Configure logging
logger = logging.getLogger(__name__)

TRANSCRIPT_SEPARATOR = "\n\n"

# Share of the progress bar given to each phase
CONVERT_DONE = 15.0
SEGMENT_DONE = 25.0
TRANSCRIBE_DONE = 90.0


def join_transcripts(texts: List[str]) -> str:
    """Join per-segment texts, in order, into the final transcript."""
    return TRANSCRIPT_SEPARATOR.join(texts)


class _JobContext:
    """Per-job state: identity, progress listener and artifacts to clean up."""

    def __init__(self, job_id: str, listener: ProgressListener):
        self.job_id = job_id
        self.listener = listener
        self.stage = JobStage.RECEIVED
        self.cleanup: list = []

    def report(self, stage: JobStage, progress: float, message: str = "", **kwargs) -> None:
        self.stage = stage
        self.listener.on_event(ProgressEvent(self.job_id, stage, progress, message, **kwargs))


class PipelineOrchestrator:
    """Runs transcription jobs against the shared working directory."""

    def __init__(
        self,
        settings: Settings,
        store: ResultStore,
        tool: Optional[FFmpegTool] = None,
        transcriber: Optional[WhisperTranscriber] = None,
        segmenter: Optional[Segmenter] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Resolved configuration (ceilings, timeouts, API key)
            store: ResultStore for the working directory
            tool: Media tool; built from settings when omitted
            transcriber: Transcription client; built from settings when omitted
            segmenter: Segmenter; built around ``tool`` when omitted
        """
        self.settings = settings
        self.store = store
        self.tool = tool or FFmpegTool(
            ffmpeg_bin=settings.ffmpeg_bin,
            ffprobe_bin=settings.ffprobe_bin,
            timeout=settings.ffmpeg_timeout,
            probe_timeout=settings.probe_timeout,
        )
        self.segmenter = segmenter or Segmenter(self.tool)
        self.transcriber = transcriber or WhisperTranscriber(
            api_key=settings.openai_api_key,
            model=settings.transcription_model,
            timeout=settings.transcription_timeout,
            size_ceiling=settings.remote_ceiling_bytes,
            base_url=settings.openai_base_url,
        )

    def run_job(
        self,
        handle: SourceMediaHandle,
        original_filename: str,
        listener: Optional[ProgressListener] = None,
        job_id: Optional[str] = None,
    ) -> JobResult:
        """
        Turn one media file into a persisted transcript.

        Args:
            handle: Source media (never modified or deleted)
            original_filename: Name shown in the transcript header and used for its base name
            listener: Receives a ProgressEvent per stage; the last one is DONE or FAILED
            job_id: Identifier to report progress under (generated when omitted)

        Returns:
            JobResult for the written transcript

        Raises:
            MediascribeError: The taxonomy error of the stage that failed
        """
        job = _JobContext(job_id or str(uuid.uuid4()), CompositeListener(LoggingProgressListener(), listener))
        start_time = time.time()

        logger.info(f"=== Processing {original_filename} (job {job.job_id}) ===")
        logger.info(f"Path: {handle.path}, size: {format_size_mb(handle.size_bytes)}, kind: {handle.kind}")

        try:
            self.settings.require_openai_key()
            job.report(JobStage.RECEIVED, 0.0, f"Received {original_filename}")

            result = self._run_stages(job, handle, original_filename)
        except Exception as e:
            failed_stage = job.stage
            self._cleanup(job, handle)
            if not isinstance(e, MediascribeError):
                logger.exception(f"Unexpected error in job {job.job_id} during {failed_stage.value}")
            else:
                logger.error(f"Job {job.job_id} failed during {failed_stage.value}: {e.kind}: {e}")
            job.report(JobStage.FAILED, 100.0, str(e))
            raise

        self._cleanup(job, handle)
        job.report(JobStage.DONE, 100.0, "Transcription completed")
        logger.info(f"Job {job.job_id} completed in {time.time() - start_time:.2f} seconds")
        return result

    def _run_stages(self, job: _JobContext, handle: SourceMediaHandle, original_filename: str) -> JobResult:
        audio_path = handle.path

        # Stage 1: Conversion (video, or audio in a container we cannot name)
        if handle.needs_conversion:
            job.report(JobStage.CONVERTING, 5.0, f"Extracting audio from {handle.kind} file...")
            derived = self.store.temp_path(f"audio_{unique_suffix()}.mp3")
            job.cleanup.append(derived)
            audio_path = self.tool.convert_to_audio(handle.path, derived)
            job.report(JobStage.CONVERTING, CONVERT_DONE, "Audio extracted")
        else:
            logger.info("Audio file detected, no extraction needed")

        # Stage 2: Segmentation
        job.report(JobStage.SEGMENTING, CONVERT_DONE, "Checking audio size...")
        segment_dir = self.store.temp_path(f"segments_{unique_suffix()}")
        job.cleanup.append(segment_dir)
        segments = self.segmenter.segment(audio_path, self.settings.segment_ceiling_bytes, segment_dir)
        job.report(JobStage.SEGMENTING, SEGMENT_DONE, f"{len(segments)} segment(s) to transcribe")

        # Stage 3: Transcription, strictly one segment after another
        texts = []
        total = len(segments)
        for index, segment_path in enumerate(segments.paths):
            progress = SEGMENT_DONE + (TRANSCRIBE_DONE - SEGMENT_DONE) * index / total
            job.report(
                JobStage.TRANSCRIBING,
                progress,
                f"Transcribing segment {index + 1} of {total}...",
                segment_index=index,
                segment_count=total,
            )
            texts.append(self.transcriber.transcribe(segment_path, label=f"segment {index + 1}/{total}"))

        # Stage 4: Join
        job.report(JobStage.JOINING, TRANSCRIBE_DONE, "Joining transcripts...")
        transcription = join_transcripts(texts)

        # Stage 5: Persist
        job.report(JobStage.PERSISTING, 95.0, "Saving transcription...")
        result = self.store.save_transcription(transcription, original_filename, job.job_id)
        result.segment_count = total
        return result

    def _cleanup(self, job: _JobContext, handle: SourceMediaHandle) -> None:
        """Remove derived artifacts; the source file is never touched."""
        source = handle.path.resolve()
        targets = [path for path in job.cleanup if path.resolve() != source]
        if not targets:
            return
        job.report(JobStage.CLEANUP, 98.0, "Cleaning up temporary files...")
        cleanup_paths(targets)
