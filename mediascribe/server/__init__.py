"""
Transcription server package.

This package provides the Flask API server, the media-to-text pipeline that
backs it, the working-directory store, bearer-token auth and progress
reporting.
"""

from .app import create_app, main
from .models import JobFailure, JobResult, JobStage, ProgressEvent, SourceMediaHandle, StoredFile
from .processor import PipelineOrchestrator, join_transcripts
from .progress import ProgressBroker, ProgressListener
from .result_store import ResultStore

__all__ = [
    "create_app",
    "main",
    "PipelineOrchestrator",
    "join_transcripts",
    "ResultStore",
    "ProgressBroker",
    "ProgressListener",
    "JobStage",
    "JobResult",
    "JobFailure",
    "ProgressEvent",
    "SourceMediaHandle",
    "StoredFile",
]
