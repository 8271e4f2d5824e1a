"""SQLAlchemy ORM models for the WorkChat state database.

This module defines the data models for users, stored provider tokens,
chats, chat messages, file attachments, and feedback. Uses SQLAlchemy 2.0
style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


class MessageRole(str, Enum):
    """Author role of a chat message."""

    user = "user"
    assistant = "assistant"
    system = "system"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class User(Base):
    """Application user.

    Attributes:
        id: UUID4 primary key.
        email: Unique login email.
        name: Display name.
        picture: Optional avatar URL.
        created_at: ISO8601 creation timestamp.
        updated_at: ISO8601 last-update timestamp.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    picture: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, email={self.email!r})>"


class UserToken(Base):
    """Encrypted Google token storage for one user.

    The token bundle (access, refresh, and ID tokens) is stored as an
    AES-256-GCM JSON envelope bound to the user id via AAD. Only the
    expiry is kept in clear text so the UI can show staleness.

    Attributes:
        user_id: FK to User (one row per user).
        encrypted_tokens: AES-256-GCM JSON envelope string.
        expires_at: ISO8601 access-token expiry, if known.
        key_version: Encryption key version.
    """

    __tablename__ = "user_tokens"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    encrypted_tokens: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    key_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<UserToken(user_id={self.user_id!r}, expires_at={self.expires_at!r})>"


class Chat(Base):
    """A conversation owned by one user.

    Attributes:
        id: UUID primary key.
        user_id: Owning user.
        title: Derived from the first message (or 'File Upload').
        created_at: ISO8601 creation timestamp.
        updated_at: ISO8601 timestamp, advanced on every appended message.
    """

    __tablename__ = "chats"
    __table_args__ = (
        Index("ix_chats_user_updated", "user_id", "updated_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="ChatMessage.sequence",
    )

    def __repr__(self) -> str:
        return f"<Chat(id={self.id!r}, title={self.title!r})>"


class ChatMessage(Base):
    """A single persisted chat message.

    Attributes:
        id: UUID primary key.
        chat_id: FK to Chat.
        user_id: User who owns the chat.
        role: 'user', 'assistant', or 'system'.
        content: Message text (user turns include folded file blocks).
        model: Completion model identifier (assistant turns).
        attachment_ids_json: JSON list of attachment ids introduced by this message.
        tools_used_json: JSON list of tool names attempted (assistant turns).
        sequence: Ordering within the chat (monotonically increasing).
        created_at: ISO8601 creation timestamp.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("chat_id", "sequence", name="uq_chatmsg_chat_seq"),
        Index("ix_chatmsg_chat_seq", "chat_id", "sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    chat_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    attachment_ids_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    tools_used_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")

    def __repr__(self) -> str:
        return (
            f"<ChatMessage(id={self.id!r}, role={self.role!r}, "
            f"seq={self.sequence})>"
        )


class Attachment(Base):
    """Uploaded file metadata and storage pointer.

    Created before its owning message exists. ``message_id`` is NULL while
    the attachment is unlinked and must be set once the user message is
    persisted. Rows left unlinked are orphans for reconciliation.

    Attributes:
        id: UUID primary key.
        message_id: FK to the owning ChatMessage (NULL while unlinked).
        user_id: Uploading user.
        filename: Stored (unique) filename.
        original_name: Client-supplied filename.
        mime_type: Client-supplied content type.
        file_size: Size in bytes.
        storage_path: Location returned by the upload storage.
        created_at: ISO8601 creation timestamp.
    """

    __tablename__ = "attachments"
    __table_args__ = (
        Index("ix_attachments_message", "message_id"),
        Index("ix_attachments_unlinked", "message_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    message_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("chat_messages.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    @property
    def is_linked(self) -> bool:
        """Whether the attachment has been linked to its owning message."""
        return self.message_id is not None

    def __repr__(self) -> str:
        return (
            f"<Attachment(id={self.id!r}, name={self.original_name!r}, "
            f"message_id={self.message_id!r})>"
        )


class Feedback(Base):
    """User-submitted product feedback with a 1-5 rating."""

    __tablename__ = "feedback"
    __table_args__ = (
        Index("ix_feedback_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<Feedback(id={self.id!r}, rating={self.rating})>"
