"""Persistence for chats, chat messages, and attachments.

Thin layer between the orchestrator/routes and the SQLAlchemy models. All
transcript reads and writes go through this service; clients never write
messages directly.
"""

import json
import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.db.models import (
    Attachment,
    Chat,
    ChatMessage,
    MessageRole,
    generate_uuid,
    utc_now_iso,
)
from src.errors.domain import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


def _load_json_list(raw: str | None, what: str, message_id: str) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupted %s for message %s", what, message_id)
        return []
    return value if isinstance(value, list) else []


class ConversationStore:
    """CRUD operations for chats, their messages, and attachments.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    # Chats

    def create_chat(self, user_id: str, title: str) -> Chat:
        chat = Chat(id=generate_uuid(), user_id=user_id, title=title[:255])
        self._db.add(chat)
        self._db.commit()
        logger.info("Created chat %s for user %s", chat.id, user_id)
        return chat

    def get_chat(self, chat_id: str) -> Chat | None:
        return self._db.get(Chat, chat_id)

    def get_chat_for_user(self, chat_id: str, user_id: str) -> Chat:
        """Fetch a chat and check ownership.

        Raises:
            NotFoundError: If the chat does not exist.
            ForbiddenError: If the chat belongs to another user.
        """
        chat = self.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        if chat.user_id != user_id:
            raise ForbiddenError("Chat", chat_id)
        return chat

    def touch_chat(self, chat_id: str) -> None:
        """Advance the chat's updated_at to now."""
        chat = self._db.get(Chat, chat_id)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        chat.updated_at = utc_now_iso()
        self._db.commit()

    def list_chats(self, user_id: str) -> list[dict[str, Any]]:
        """List a user's chats, most recently updated first, with message counts."""
        query = (
            self._db.query(
                Chat.id,
                Chat.title,
                Chat.created_at,
                Chat.updated_at,
                func.count(ChatMessage.id).label("message_count"),
            )
            .outerjoin(ChatMessage, ChatMessage.chat_id == Chat.id)
            .filter(Chat.user_id == user_id)
            .group_by(Chat.id)
            .order_by(Chat.updated_at.desc(), Chat.created_at.desc())
        )
        return [
            {
                "id": row[0],
                "title": row[1],
                "created_at": row[2],
                "updated_at": row[3],
                "message_count": row[4],
            }
            for row in query.all()
        ]

    def get_chat_with_messages(self, chat_id: str, user_id: str) -> dict[str, Any]:
        """Load a chat with its ordered messages and their attachments.

        Raises:
            NotFoundError: If the chat does not exist.
            ForbiddenError: If the chat belongs to another user.
        """
        chat = self.get_chat_for_user(chat_id, user_id)

        message_ids = [m.id for m in chat.messages]
        attachments_by_message: dict[str, list[dict[str, Any]]] = {}
        if message_ids:
            rows = (
                self._db.query(Attachment)
                .filter(Attachment.message_id.in_(message_ids))
                .order_by(Attachment.created_at)
                .all()
            )
            for a in rows:
                attachments_by_message.setdefault(a.message_id, []).append({
                    "id": a.id,
                    "original_name": a.original_name,
                    "mime_type": a.mime_type,
                    "file_size": a.file_size,
                })

        messages = [
            {
                "id": m.id,
                "role": m.role,
                "content": m.content,
                "model": m.model,
                "tools_used": _load_json_list(m.tools_used_json, "tools_used_json", m.id),
                "attachments": attachments_by_message.get(m.id, []),
                "sequence": m.sequence,
                "created_at": m.created_at,
            }
            for m in chat.messages
        ]
        return {
            "chat": {
                "id": chat.id,
                "title": chat.title,
                "created_at": chat.created_at,
                "updated_at": chat.updated_at,
            },
            "messages": messages,
        }

    def delete_chat(self, chat_id: str, user_id: str) -> list[str]:
        """Delete a chat and its messages.

        Attachments are deleted too. Returns their storage paths so the
        caller can remove the stored files.

        Raises:
            NotFoundError: If the chat does not exist.
            ForbiddenError: If the chat belongs to another user.
        """
        chat = self.get_chat_for_user(chat_id, user_id)
        message_ids = [m.id for m in chat.messages]
        storage_paths: list[str] = []
        if message_ids:
            attachments = (
                self._db.query(Attachment)
                .filter(Attachment.message_id.in_(message_ids))
                .all()
            )
            for a in attachments:
                storage_paths.append(a.storage_path)
                self._db.delete(a)
        self._db.delete(chat)
        self._db.commit()
        logger.info("Deleted chat %s (%d attachments)", chat_id, len(storage_paths))
        return storage_paths

    # Messages

    def append_message(
        self,
        chat_id: str,
        user_id: str,
        role: MessageRole | str,
        content: str,
        model: str | None = None,
        attachment_ids: list[str] | None = None,
        tools_used: list[str] | None = None,
    ) -> ChatMessage:
        """Append a message with the next sequence number.

        Also advances the chat's updated_at in the same commit.

        Raises:
            NotFoundError: If the chat does not exist.
        """
        chat = self._db.get(Chat, chat_id)
        if chat is None:
            raise NotFoundError("Chat", chat_id)

        # SELECT+INSERT is safe under SQLite's single writer. A concurrent
        # writer on another backend would hit uq_chatmsg_chat_seq instead.
        max_seq = (
            self._db.query(ChatMessage.sequence)
            .filter_by(chat_id=chat_id)
            .order_by(ChatMessage.sequence.desc())
            .first()
        )
        next_seq = (max_seq[0] + 1) if max_seq else 1

        msg = ChatMessage(
            id=generate_uuid(),
            chat_id=chat_id,
            user_id=user_id,
            role=role.value if isinstance(role, MessageRole) else role,
            content=content,
            model=model,
            attachment_ids_json=json.dumps(attachment_ids) if attachment_ids else None,
            tools_used_json=json.dumps(tools_used) if tools_used is not None else None,
            sequence=next_seq,
        )
        self._db.add(msg)
        chat.updated_at = utc_now_iso()
        self._db.commit()
        return msg

    def list_messages(self, chat_id: str) -> list[ChatMessage]:
        return (
            self._db.query(ChatMessage)
            .filter_by(chat_id=chat_id)
            .order_by(ChatMessage.sequence)
            .all()
        )

    # Attachments

    def create_attachment(
        self,
        user_id: str,
        filename: str,
        original_name: str,
        mime_type: str,
        file_size: int,
        storage_path: str,
    ) -> Attachment:
        """Create an unlinked attachment row."""
        attachment = Attachment(
            id=generate_uuid(),
            message_id=None,
            user_id=user_id,
            filename=filename,
            original_name=original_name,
            mime_type=mime_type or "application/octet-stream",
            file_size=file_size,
            storage_path=storage_path,
        )
        self._db.add(attachment)
        self._db.commit()
        return attachment

    def link_attachment(self, attachment_id: str, message_id: str) -> Attachment:
        """Point an attachment at its owning message.

        Raises:
            NotFoundError: If the attachment or message does not exist.
        """
        attachment = self._db.get(Attachment, attachment_id)
        if attachment is None:
            raise NotFoundError("Attachment", attachment_id)
        if self._db.get(ChatMessage, message_id) is None:
            raise NotFoundError("Message", message_id)
        attachment.message_id = message_id
        self._db.commit()
        return attachment

    def get_attachment(self, attachment_id: str) -> Attachment | None:
        return self._db.get(Attachment, attachment_id)

    def list_unlinked_attachments(self, older_than: str | None = None) -> list[Attachment]:
        """Attachments never linked to a message (orphans of failed turns).

        Args:
            older_than: Optional ISO8601 cutoff; only rows created before it.
        """
        query = self._db.query(Attachment).filter(Attachment.message_id.is_(None))
        if older_than is not None:
            query = query.filter(Attachment.created_at < older_than)
        return query.order_by(Attachment.created_at).all()
