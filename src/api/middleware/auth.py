"""Bearer session tokens and the current-user dependency.

Tokens are base64url JSON payloads ``{"sub", "iat", "expires_at"}`` signed
with HMAC-SHA256 under WORKCHAT_SESSION_SECRET. The OAuth login that
precedes token issuance happens outside this service; ``issue_session_token``
is called by whatever completes it (and by ``workchat create-user``).
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import os
import time

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from src.db.connection import get_db
from src.db.models import User

logger = logging.getLogger(__name__)

SESSION_SECRET_ENV_VAR = "WORKCHAT_SESSION_SECRET"
_MIN_SECRET_LENGTH = 32
DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 3600


class SessionConfigError(RuntimeError):
    """WORKCHAT_SESSION_SECRET is missing or too weak."""


def _get_session_secret() -> str:
    secret = os.environ.get(SESSION_SECRET_ENV_VAR, "").strip()
    if not secret:
        raise SessionConfigError(
            f"{SESSION_SECRET_ENV_VAR} env var is required. "
            f"Set it to a stable secret (min {_MIN_SECRET_LENGTH} chars) for session signing."
        )
    return secret


def validate_session_secret() -> None:
    """Fail fast at startup when the signing secret is unusable.

    Raises:
        SessionConfigError: If the secret is missing or shorter than 32 chars.
    """
    secret = _get_session_secret()
    if len(secret) < _MIN_SECRET_LENGTH:
        raise SessionConfigError(
            f"{SESSION_SECRET_ENV_VAR} must be at least {_MIN_SECRET_LENGTH} characters. "
            f"Current length: {len(secret)}. Use a cryptographically random value."
        )


def _sign(payload: dict, secret: str) -> str:
    payload_json = json.dumps(payload, sort_keys=True)
    return hmac.new(secret.encode(), payload_json.encode(), hashlib.sha256).hexdigest()


def issue_session_token(user_id: str, ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS) -> str:
    """Create a signed bearer token for ``user_id``."""
    now = time.time()
    payload = {"sub": user_id, "iat": now, "expires_at": now + ttl_seconds}
    payload["signature"] = _sign(payload, _get_session_secret())
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def verify_session_token(token: str) -> str | None:
    """Return the user id of a valid, unexpired token, else None."""
    try:
        secret = _get_session_secret()
        decoded = json.loads(base64.urlsafe_b64decode(token.encode()))
        if not isinstance(decoded, dict):
            return None
        if time.time() > float(decoded.get("expires_at", 0)):
            return None
        signature = decoded.pop("signature", None)
        if not isinstance(signature, str):
            return None
        if not hmac.compare_digest(signature, _sign(decoded, secret)):
            return None
        subject = decoded.get("sub")
        return subject if isinstance(subject, str) and subject else None
    except (json.JSONDecodeError, ValueError, TypeError, UnicodeDecodeError):
        return None


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """FastAPI dependency resolving the bearer token to a User.

    Raises:
        HTTPException: 401 when the token is missing, invalid, expired, or
            names a user that no longer exists.
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Access token required")

    user_id = verify_session_token(token)
    if user_id is None:
        logger.info("Rejected invalid session token from %s",
                    request.client.host if request.client else "unknown")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user
