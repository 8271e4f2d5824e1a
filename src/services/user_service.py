"""User records.

Identity is established upstream (OAuth login is handled outside this
service); this module only keeps the profile rows that chats, tokens and
feedback hang off.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import User, utc_now_iso
from src.errors.domain import InvalidInputError

logger = logging.getLogger(__name__)


class UserService:
    """Create and look up users.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_user(self, user_id: str) -> User | None:
        return self._db.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        return self._db.execute(
            select(User).where(User.email == email.strip().lower())
        ).scalar_one_or_none()

    def upsert_user(self, email: str, name: str = "", picture: str | None = None) -> User:
        """Create a user, or refresh the profile of an existing one.

        Raises:
            InvalidInputError: If the email is blank or malformed.
        """
        normalized = (email or "").strip().lower()
        if not normalized or "@" not in normalized:
            raise InvalidInputError(f"Invalid email address: {email!r}")

        user = self.get_by_email(normalized)
        if user is None:
            user = User(email=normalized, name=name or normalized.split("@")[0], picture=picture)
            self._db.add(user)
            logger.info("Created user %s", normalized)
        else:
            if name:
                user.name = name
            if picture is not None:
                user.picture = picture
            user.updated_at = utc_now_iso()
        self._db.commit()
        return user
