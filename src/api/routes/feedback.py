"""FastAPI routes for user feedback.

Endpoints:
    POST /feedback        - Submit feedback (authenticated)
    GET  /feedback        - Latest public feedback (public)
    GET  /feedback/stats  - Rating summary (authenticated)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.api.middleware.auth import get_current_user
from src.api.schemas import (
    FeedbackCreatedResponse,
    FeedbackItem,
    FeedbackListResponse,
    FeedbackRequest,
    FeedbackStatsResponse,
)
from src.db.connection import get_db
from src.db.models import User
from src.services.feedback_service import FeedbackService

router = APIRouter(prefix="/feedback", tags=["feedback"])


@router.post("", response_model=FeedbackCreatedResponse)
def submit_feedback(
    body: FeedbackRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FeedbackCreatedResponse:
    feedback = FeedbackService(db).create(user, body.message, body.rating)
    return FeedbackCreatedResponse(
        feedback=FeedbackItem(
            id=feedback.id,
            user_name=feedback.user_name,
            user_image=feedback.user_image,
            message=feedback.message,
            rating=feedback.rating,
            created_at=feedback.created_at,
        )
    )


@router.get("", response_model=FeedbackListResponse)
def list_feedback(db: Session = Depends(get_db)) -> FeedbackListResponse:
    return FeedbackListResponse(feedback=FeedbackService(db).list_public())


@router.get("/stats", response_model=FeedbackStatsResponse)
def feedback_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FeedbackStatsResponse:
    return FeedbackStatsResponse(**FeedbackService(db).stats())
