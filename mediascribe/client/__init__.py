"""
Client package for communicating with the transcription API server.
"""

from .api_client import APIClient, transcribe

__all__ = ["APIClient", "transcribe"]
