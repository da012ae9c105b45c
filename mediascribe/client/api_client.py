"""
Client module for communicating with the transcription API server.

This module provides a simple interface for scripts to:
- Log in with the shared password
- Upload media files for transcription
- Transcribe files already stored on the server
- List stored files, follow progress and download transcripts
"""

import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import ConnectionError, RequestException


class APIClient:
    """Client for communicating with the transcription API server."""

    def __init__(self, base_url: str = "http://localhost:3000", token: Optional[str] = None, timeout: int = 30):
        """
        Initialize the API client.

        Args:
            base_url: Base URL of the API server
            token: Bearer token from a previous login
            timeout: Default request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout
        self.token = token

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _get(self, path: str, what: str, **kwargs) -> requests.Response:
        try:
            response = self.session.get(f"{self.base_url}{path}", headers=self._headers(), timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response
        except RequestException as e:
            raise RequestException(f"Failed to {what}: {e}")

    def health_check(self) -> Dict[str, Any]:
        """
        Check if the API server is healthy.

        Raises:
            ConnectionError: If unable to connect to the server
        """
        try:
            response = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except RequestException as e:
            raise ConnectionError(f"Unable to connect to API server: {e}")

    def login(self, password: str) -> str:
        """
        Exchange the shared password for a bearer token.

        The token is kept on the client for later calls.

        Raises:
            RequestException: If the password is rejected or the request fails
        """
        try:
            response = self.session.post(
                f"{self.base_url}/api/auth/simple", json={"password": password}, timeout=self.timeout
            )
            response.raise_for_status()
        except RequestException as e:
            raise RequestException(f"Login failed: {e}")

        self.token = response.json().get("token")
        return self.token

    def check_auth(self) -> bool:
        """Return True if the current token is accepted by the server."""
        response = self.session.get(f"{self.base_url}/api/auth/check", headers=self._headers(), timeout=self.timeout)
        return response.status_code == 200

    def list_server_files(self) -> List[Dict[str, Any]]:
        """List media and transcript files on the server, newest first."""
        return self._get("/api/server-files", "list server files").json().get("files", [])

    def transcribe_file(self, file_path: str, job_id: Optional[str] = None, timeout: int = 3600) -> Dict[str, Any]:
        """
        Upload a media file and wait for its transcription.

        Args:
            file_path: Path to the audio or video file
            job_id: Identifier to follow progress under (generated when omitted)
            timeout: Request timeout in seconds

        Returns:
            Dictionary with transcription, transcriptionFile and jobId

        Raises:
            FileNotFoundError: If the file doesn't exist
            RequestException: If the upload or the transcription fails
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Media file not found: {file_path}")

        data = {"jobId": job_id or str(uuid.uuid4())}
        try:
            with open(file_path, "rb") as media_file:
                files = {"file": (file_path.name, media_file)}
                response = self.session.post(
                    f"{self.base_url}/api/transcribe",
                    files=files,
                    data=data,
                    headers=self._headers(),
                    timeout=timeout,
                )
                response.raise_for_status()
                return response.json()
        except RequestException as e:
            raise RequestException(f"Transcription failed: {_details(e)}")

    def transcribe_server_file(
        self, filename: str, job_id: Optional[str] = None, timeout: int = 3600
    ) -> Dict[str, Any]:
        """Transcribe a file that already lives in the server's working directory."""
        payload = {"filename": filename, "jobId": job_id or str(uuid.uuid4())}
        try:
            response = self.session.post(
                f"{self.base_url}/api/transcribe-server-file",
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()
        except RequestException as e:
            raise RequestException(f"Transcription failed: {_details(e)}")

    def get_progress(self, job_id: str) -> Dict[str, Any]:
        """Get the latest progress event for a job."""
        return self._get(f"/api/progress/{job_id}", "get job progress").json()

    def download(self, filename: str, destination: str) -> Path:
        """
        Download a stored file.

        Args:
            filename: Name of the file on the server
            destination: Local file path or directory

        Returns:
            Path of the written file
        """
        destination = Path(destination)
        if destination.is_dir():
            destination = destination / filename

        response = self._get(f"/api/download/{filename}", "download file", stream=True)
        with open(destination, "wb") as f:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                f.write(chunk)
        return destination


def _details(error: RequestException) -> str:
    """Prefer the server's failure payload over the bare HTTP error."""
    response = getattr(error, "response", None)
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            return str(error)
        kind = body.get("kind")
        details = body.get("details") or body.get("error")
        if details:
            return f"{kind}: {details}" if kind else str(details)
    return str(error)


# Convenience function for quick transcriptions
def transcribe(file_path: str, password: str, api_url: str = "http://localhost:3000") -> str:
    """
    Log in, upload a file and return its transcript text.

    Args:
        file_path: Path to the audio or video file
        password: Shared access password
        api_url: API server URL
    """
    client = APIClient(api_url)
    client.login(password)
    return client.transcribe_file(file_path)["transcription"]
