"""
Shared-password authentication with signed bearer tokens.

``POST /api/auth/simple`` exchanges the shared password for a token signed
with the configured secret (itsdangerous, the signing library Flask itself
uses). Protected routes are wrapped with ``require_auth``.

With ``AUTH_MODE=none`` every request is treated as authenticated.
"""

import logging
import secrets
import time
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..config import Settings

logger = logging.getLogger(__name__)

TOKEN_SALT = "mediascribe-auth"


class TokenAuthenticator:
    """Issues and verifies bearer tokens for the shared password."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.serializer = URLSafeTimedSerializer(settings.token_secret, salt=TOKEN_SALT)

    @property
    def enabled(self) -> bool:
        return self.settings.auth_mode == "password"

    def check_password(self, password: Any) -> bool:
        if not isinstance(password, str) or not password:
            return False
        return secrets.compare_digest(password.encode("utf-8"), self.settings.access_password.encode("utf-8"))

    def issue_token(self) -> str:
        return self.serializer.dumps({"authenticated": True, "timestamp": int(time.time() * 1000)})

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the token claims, or None if the token is invalid or expired."""
        try:
            claims = self.serializer.loads(token, max_age=self.settings.token_max_age)
        except SignatureExpired:
            logger.info("Rejected expired token")
            return None
        except BadSignature:
            return None
        return claims if isinstance(claims, dict) and claims.get("authenticated") else None


def _authenticator() -> TokenAuthenticator:
    return current_app.extensions["mediascribe"]["auth"]


def require_auth(f):
    """Decorator to require a valid bearer token."""

    @wraps(f)
    def decorated(*args, **kwargs):
        auth = _authenticator()
        if not auth.enabled:
            g.auth = {"authenticated": True, "timestamp": None}
            return f(*args, **kwargs)

        auth_header = request.headers.get("Authorization", "")
        parts = auth_header.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 and parts[0].lower() == "bearer" else ""
        if not token:
            return jsonify({"error": "No token provided"}), 401

        claims = auth.verify_token(token)
        if claims is None:
            return jsonify({"error": "Invalid token"}), 403

        g.auth = claims
        return f(*args, **kwargs)

    return decorated
