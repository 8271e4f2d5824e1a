"""Database module for WorkChat state management and persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from src.db.models import (
    Attachment,
    Chat,
    ChatMessage,
    Feedback,
    MessageRole,
    User,
    UserToken,
)

__all__ = [
    # Models
    "User",
    "UserToken",
    "Chat",
    "ChatMessage",
    "Attachment",
    "Feedback",
    # Enums
    "MessageRole",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
