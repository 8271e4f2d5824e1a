"""User feedback submissions and the public feedback wall."""

import logging
from typing import Any
from urllib.parse import quote

from sqlalchemy.orm import Session

from src.db.models import Feedback, User, generate_uuid
from src.errors.domain import InvalidInputError

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
PUBLIC_FEEDBACK_LIMIT = 10


def default_avatar_url(name: str) -> str:
    """Initials avatar used when the user has no picture."""
    return f"https://ui-avatars.com/api/?name={quote(name or 'User')}&background=6366f1&color=fff"


class FeedbackService:
    """Create and list feedback.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def create(self, user: User, message: str, rating: int) -> Feedback:
        """Record feedback from ``user``.

        Raises:
            InvalidInputError: If the message is blank or the rating is
                outside 1..5.
        """
        text = (message or "").strip()
        if not text:
            raise InvalidInputError("Message and rating are required")
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise InvalidInputError("Rating must be an integer")
        if rating < MIN_RATING or rating > MAX_RATING:
            raise InvalidInputError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

        feedback = Feedback(
            id=generate_uuid(),
            user_id=user.id,
            user_name=user.name,
            user_image=user.picture or default_avatar_url(user.name),
            message=text,
            rating=rating,
        )
        self._db.add(feedback)
        self._db.commit()
        logger.info("Feedback %s submitted by user %s", feedback.id, user.id)
        return feedback

    def list_public(self, limit: int = PUBLIC_FEEDBACK_LIMIT) -> list[dict[str, Any]]:
        """Newest feedback first, without user ids."""
        rows = (
            self._db.query(Feedback)
            .order_by(Feedback.created_at.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": f.id,
                "user_name": f.user_name,
                "user_image": f.user_image,
                "message": f.message,
                "rating": f.rating,
                "created_at": f.created_at,
            }
            for f in rows
        ]

    def stats(self) -> dict[str, Any]:
        """Count, average rating (2 decimals), and per-rating distribution."""
        ratings = [r for (r,) in self._db.query(Feedback.rating).all()]
        total = len(ratings)
        average = round(sum(ratings) / total, 2) if total else 0
        return {
            "total_feedback": total,
            "average_rating": average,
            "rating_distribution": {
                str(n): ratings.count(n) for n in range(MIN_RATING, MAX_RATING + 1)
            },
        }
