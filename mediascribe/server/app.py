"""
Flask API server for media transcription.

This server provides endpoints for:
- Exchanging the shared password for a bearer token
- Uploading audio/video files and transcribing them
- Transcribing files that already live in the working directory
- Listing and downloading media and transcripts
- Following job progress (polling or server-sent events)

One application serves every deployment variant. Auth mode, progress mode,
rate limiting of /api/ routes, CORS origins and security headers all come
from ``Settings``.
"""

import json
import logging
import re
import uuid
from datetime import datetime
from typing import Optional

from flask import Flask, Response, current_app, g, jsonify, request, send_file, stream_with_context
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import RequestEntityTooLarge

from ..config import Settings
from ..errors import AccessDenied, ConfigurationError, MediascribeError
from ..media.utils import AUDIO_EXTENSIONS, VIDEO_EXTENSIONS, format_size_mb, iso_timestamp
from .auth import TokenAuthenticator, require_auth
from .models import JobFailure, SourceMediaHandle
from .processor import PipelineOrchestrator
from .progress import ProgressBroker
from .result_store import ResultStore

logger = logging.getLogger(__name__)

ALLOWED_MIME_SUBTYPES = ("mp4", "avi", "mov", "wmv", "mkv", "webm", "mpeg", "mp3", "wav", "m4a", "aac")
MEDIA_EXTENSIONS = AUDIO_EXTENSIONS | VIDEO_EXTENSIONS
JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; connect-src 'self'"
)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once and tune werkzeug verbosity."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("werkzeug").setLevel(max(log_level, logging.WARNING))


def allowed_upload(filename: str, mimetype: Optional[str]) -> bool:
    """Check the upload against the accepted media types (MIME subtype or extension)."""
    if mimetype and any(subtype in mimetype.lower() for subtype in ALLOWED_MIME_SUBTYPES):
        return True
    return "." in filename and f".{filename.rsplit('.', 1)[1].lower()}" in MEDIA_EXTENSIONS


def _job_id(candidate) -> str:
    if isinstance(candidate, str) and JOB_ID_PATTERN.match(candidate):
        return candidate
    return str(uuid.uuid4())


def _state(name: str):
    return current_app.extensions["mediascribe"][name]


def _failure_response(error: BaseException):
    failure = JobFailure.from_exception(error)
    return jsonify(failure.to_dict()), failure.status_code


def _run_job(handle: SourceMediaHandle, original_filename: str, job_id: str, **extra):
    """Run the pipeline and shape the JSON response either way."""
    orchestrator: PipelineOrchestrator = _state("orchestrator")
    broker: Optional[ProgressBroker] = _state("broker")
    try:
        result = orchestrator.run_job(handle, original_filename, listener=broker, job_id=job_id)
    except MediascribeError as e:
        logger.error(f"Transcription error: {e}")
        return _failure_response(e)
    except Exception as e:
        logger.exception("Transcription error")
        return _failure_response(e)

    return jsonify(
        {
            "success": True,
            "message": "Transcription completed",
            "jobId": result.job_id,
            "transcription": result.transcription,
            "transcriptionFile": result.transcription_file,
            "segments": result.segment_count,
            **extra,
        }
    )


def create_app(settings: Optional[Settings] = None, orchestrator: Optional[PipelineOrchestrator] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        settings: Configuration; read from the environment when omitted
        orchestrator: Pipeline to run jobs with; built from settings when omitted
    """
    settings = settings or Settings.from_env()
    store = orchestrator.store if orchestrator else ResultStore(settings.upload_dir)
    orchestrator = orchestrator or PipelineOrchestrator(settings, store)
    broker = ProgressBroker() if settings.progress_mode != "none" else None

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.extensions["mediascribe"] = {
        "settings": settings,
        "store": store,
        "orchestrator": orchestrator,
        "auth": TokenAuthenticator(settings),
        "broker": broker,
    }

    CORS(app, origins=list(settings.allowed_origins) or "*", supports_credentials=True)

    # One shared per-client budget across every /api/ route
    limiter = Limiter(
        get_remote_address,
        app=app,
        application_limits=[settings.rate_limit],
        storage_uri="memory://",
        headers_enabled=True,
        enabled=settings.rate_limit_enabled,
    )

    @limiter.request_filter
    def outside_api():
        return not request.path.startswith("/api/")

    @app.errorhandler(429)
    def too_many_requests(error):
        logger.warning(f"Rate limit exceeded for {get_remote_address()} on {request.path}")
        return jsonify({"error": RATE_LIMIT_MESSAGE}), 429

    @app.after_request
    def add_security_headers(response):
        if settings.security_headers:
            response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
            response.headers.setdefault("X-Content-Type-Options", "nosniff")
            response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
            response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    @app.errorhandler(RequestEntityTooLarge)
    def request_entity_too_large(error):
        limit_gb = settings.max_upload_bytes / 1024 / 1024 / 1024
        return jsonify({"error": f"File size too large. Maximum size is {limit_gb:g}GB."}), 413

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint."""
        return jsonify(
            {
                "status": "healthy",
                "timestamp": iso_timestamp(),
                "env": {
                    "hasOpenAI": settings.has_openai_key,
                    "hasPassword": not settings.uses_default_password,
                    "hasTokenSecret": not settings.uses_default_token_secret,
                    "authMode": settings.auth_mode,
                    "progressMode": settings.progress_mode,
                    "rateLimit": settings.rate_limit if settings.rate_limit_enabled else None,
                },
            }
        )

    @app.route("/api/auth/simple", methods=["POST"])
    def authenticate():
        """Exchange the shared password for a bearer token."""
        auth: TokenAuthenticator = _state("auth")
        payload = request.get_json(silent=True) or {}

        if not auth.enabled:
            return jsonify({"success": True, "token": ""})

        if not auth.check_password(payload.get("password")):
            logger.warning("Rejected login with invalid password")
            return jsonify({"success": False, "error": "Invalid password"}), 401

        return jsonify({"success": True, "token": auth.issue_token()})

    @app.route("/api/auth/check", methods=["GET"])
    @require_auth
    def check_auth():
        return jsonify({"authenticated": True, "timestamp": g.auth.get("timestamp")})

    @app.route("/api/server-files", methods=["GET"])
    @require_auth
    def list_server_files():
        """List media and transcript files in the working directory, newest first."""
        try:
            files = _state("store").list_files()
        except OSError as e:
            logger.error(f"Error listing server files: {e}")
            return jsonify({"error": "Failed to list server files"}), 500
        return jsonify({"files": [stored.to_dict() for stored in files]})

    @app.route("/api/transcribe", methods=["POST"])
    @require_auth
    def transcribe_upload():
        """
        Upload a media file and transcribe it.

        Expected form data:
        - file: Audio or video file
        - jobId: Optional identifier to follow progress under

        Returns the transcription and the name of the persisted transcript.
        """
        if not settings.has_openai_key:
            return _failure_response(ConfigurationError("OpenAI API key not configured"))

        if "file" not in request.files:
            return jsonify({"error": "No file uploaded"}), 400

        file = request.files["file"]
        if not file.filename:
            return jsonify({"error": "No file selected"}), 400

        if not allowed_upload(file.filename, file.mimetype):
            return jsonify({"error": "Invalid file type. Please upload video or audio files only."}), 400

        store: ResultStore = _state("store")
        upload_path = store.upload_path(file.filename, file.mimetype)
        file.save(upload_path)

        mimetype = file.mimetype or ""
        hint = mimetype if mimetype.split("/")[0] in ("audio", "video") else file.filename
        handle = SourceMediaHandle.from_path(upload_path, hint)
        job_id = _job_id(request.form.get("jobId"))

        logger.info(
            f"New transcription request: {file.filename} -> {upload_path.name} "
            f"({format_size_mb(handle.size_bytes)}, {mimetype or 'unknown type'})"
        )

        return _run_job(handle, file.filename, job_id, originalFile=upload_path.name)

    @app.route("/api/transcribe-server-file", methods=["POST"])
    @require_auth
    def transcribe_server_file():
        """Transcribe a media file that already lives in the working directory."""
        if not settings.has_openai_key:
            return _failure_response(ConfigurationError("OpenAI API key not configured"))

        payload = request.get_json(silent=True) or {}
        filename = payload.get("filename")
        if not filename or not isinstance(filename, str):
            return jsonify({"error": "No filename provided"}), 400

        store: ResultStore = _state("store")
        try:
            path = store.resolve(filename)
        except AccessDenied:
            return jsonify({"error": "Access denied"}), 403

        if not path.is_file():
            return jsonify({"error": "File not found"}), 404

        if path.suffix.lower() not in MEDIA_EXTENSIONS:
            return jsonify({"error": "Not a media file"}), 400

        logger.info(f"Server file transcription request: {filename}")
        handle = SourceMediaHandle.from_path(path)
        return _run_job(handle, filename, _job_id(payload.get("jobId")))

    @app.route("/api/download/<path:filename>", methods=["GET"])
    @require_auth
    def download(filename: str):
        store: ResultStore = _state("store")
        try:
            path = store.resolve(filename)
        except AccessDenied:
            return jsonify({"error": "Access denied"}), 403

        if not path.is_file():
            return jsonify({"error": "File not found"}), 404

        return send_file(path, as_attachment=True, download_name=path.name)

    @app.route("/api/progress/<job_id>", methods=["GET"])
    @require_auth
    def get_progress(job_id: str):
        """Latest progress event for a job."""
        broker: Optional[ProgressBroker] = _state("broker")
        if broker is None:
            return jsonify({"error": "Progress reporting disabled"}), 404

        event = broker.latest(job_id)
        if event is None:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(event.to_dict())

    @app.route("/api/progress/<job_id>/stream", methods=["GET"])
    @require_auth
    def stream_progress(job_id: str):
        """Server-sent events for a job, closed after its final event."""
        broker: Optional[ProgressBroker] = _state("broker")
        if broker is None or settings.progress_mode != "sse":
            return jsonify({"error": "Progress streaming disabled"}), 404

        def generate():
            for event in broker.stream(job_id):
                if event is None:
                    yield ": keep-alive\n\n"
                else:
                    yield f"data: {json.dumps(event.to_dict())}\n\n"

        return Response(
            stream_with_context(generate()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


def log_environment(settings: Settings) -> None:
    """Warn about missing or default secrets at startup."""
    if not settings.has_openai_key:
        logger.warning("WARNING: OPENAI_API_KEY not set! Every transcription will fail.")
    if settings.auth_mode == "password" and settings.uses_default_password:
        logger.warning("WARNING: ACCESS_PASSWORD not set, using the default password")
    if settings.auth_mode == "password" and settings.uses_default_token_secret:
        logger.warning("WARNING: TOKEN_SECRET not set, tokens are signed with the default secret")
    logger.info(
        f"Working directory: {settings.upload_dir.resolve()}, auth: {settings.auth_mode}, "
        f"progress: {settings.progress_mode}"
    )


def main() -> None:
    """Run the development server."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    log_environment(settings)
    app = create_app(settings)
    logger.info(f"Server running on port {settings.port} ({datetime.now().isoformat()})")
    logger.info(f"Health check: http://localhost:{settings.port}/health")
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
