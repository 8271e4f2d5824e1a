"""Per-user Google token storage and lookup.

The supervisor asks this module for the tokens of the user a worker is
started for. Tokens live in ``user_tokens`` as an AES-256-GCM envelope bound
to the user id, so a copied row cannot be decrypted for another user.

When no session is passed the provider opens a short-lived one via
``SessionLocal``, so callers outside request scope (the supervisor) still
read the database.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import UserToken, utc_now_iso
from src.services.credential_encryption import (
    CredentialDecryptionError,
    decrypt_credentials,
    encrypt_credentials,
    get_or_create_key,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenBundle:
    """Google tokens for one user.

    Attributes:
        access_token: OAuth access token (required).
        refresh_token: OAuth refresh token, if granted.
        id_token: OpenID Connect ID token, if granted.
        expires_at: Access-token expiry as epoch milliseconds or ISO8601.
    """

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: str | None = None

    def __repr__(self) -> str:
        return f"TokenBundle(access_token='***', expires_at={self.expires_at!r})"

    def to_dict(self) -> dict[str, str | None]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "id_token": self.id_token,
            "expires_at": self.expires_at,
        }

    def to_env(self) -> dict[str, str]:
        """Environment variables injected into the tool worker.

        Absent optional tokens are passed as empty strings so the worker
        sees a consistent set of variables.
        """
        return {
            "GOOGLE_ACCESS_TOKEN": self.access_token,
            "GOOGLE_REFRESH_TOKEN": self.refresh_token or "",
            "GOOGLE_ID_TOKEN": self.id_token or "",
            "GOOGLE_TOKEN_EXPIRES_AT": self.expires_at or "",
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenBundle":
        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ValueError("access_token is required")
        expires_at = data.get("expires_at")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            id_token=data.get("id_token") or None,
            expires_at=str(expires_at) if expires_at not in (None, "") else None,
        )


def _build_aad(user_id: str) -> str:
    return f"user_tokens:{user_id}"


class CredentialProvider:
    """Encrypted token store keyed by user id.

    Args:
        session_factory: Callable returning a new Session. Defaults to
            ``SessionLocal``.
        key_dir: Optional override for the encryption key directory.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        key_dir: str | None = None,
    ) -> None:
        if session_factory is None:
            from src.db.connection import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._key = get_or_create_key(key_dir)

    def get_tokens(self, user_id: str) -> TokenBundle | None:
        """Return the stored tokens for ``user_id``, or None.

        Undecryptable rows (key rotated, tampered envelope) are logged and
        treated as absent.
        """
        with self._session_factory() as db:
            row = db.execute(
                select(UserToken).where(UserToken.user_id == user_id)
            ).scalar_one_or_none()
            if row is None:
                return None
            encrypted = row.encrypted_tokens

        try:
            data = decrypt_credentials(encrypted, self._key, aad=_build_aad(user_id))
            return TokenBundle.from_dict(data)
        except (CredentialDecryptionError, ValueError) as e:
            logger.warning("Stored tokens for user %s are unusable: %s", user_id, e)
            return None

    def store_tokens(self, user_id: str, bundle: TokenBundle) -> None:
        """Insert or replace the tokens for ``user_id``."""
        envelope = encrypt_credentials(bundle.to_dict(), self._key, aad=_build_aad(user_id))
        with self._session_factory() as db:
            row = db.execute(
                select(UserToken).where(UserToken.user_id == user_id)
            ).scalar_one_or_none()
            if row is None:
                row = UserToken(user_id=user_id, encrypted_tokens=envelope)
                db.add(row)
            else:
                row.encrypted_tokens = envelope
                row.updated_at = utc_now_iso()
            row.expires_at = bundle.expires_at
            db.commit()
        logger.info("Stored Google tokens for user %s", user_id)

    def delete_tokens(self, user_id: str) -> bool:
        """Remove stored tokens. Returns True if a row was deleted."""
        with self._session_factory() as db:
            row = db.execute(
                select(UserToken).where(UserToken.user_id == user_id)
            ).scalar_one_or_none()
            if row is None:
                return False
            db.delete(row)
            db.commit()
        logger.info("Deleted Google tokens for user %s", user_id)
        return True
