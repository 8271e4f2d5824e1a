"""FastAPI routes for chat turns and chat history.

Endpoints:
    POST   /chat            - Run one chat turn (multipart, up to 5 files)
    GET    /chats           - List the current user's chats
    GET    /chat/{chat_id}  - Chat with ordered messages
    DELETE /chat/{chat_id}  - Delete a chat, its messages and attachments
"""

import json
import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile

from src.api.dependencies import (
    get_conversation_store,
    get_orchestrator,
    get_upload_storage,
)
from src.api.middleware.auth import get_current_user
from src.api.schemas import (
    ChatDetailResponse,
    ChatListResponse,
    ChatResponse,
)
from src.db.models import User
from src.orchestrator.chat_orchestrator import ChatOrchestrator
from src.orchestrator.chat_types import ChatTurnRequest, UploadedFile
from src.services.conversation_store import ConversationStore
from src.services.upload_storage import UploadStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def parse_enabled_tools(values: list[str] | None) -> list[str]:
    """Accept repeated form fields or a single JSON array string."""
    if not values:
        return []
    if len(values) == 1 and values[0].strip().startswith("["):
        try:
            decoded = json.loads(values[0])
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, list):
            return [str(v) for v in decoded if str(v).strip()]
    return [v.strip() for v in values if v and v.strip()]


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def post_chat(
    message: str = Form(""),
    chatId: str | None = Form(None),
    model: str | None = Form(None),
    enabledTools: list[str] | None = Form(None),
    attachments: list[UploadFile] | None = File(None),
    user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Run one chat turn.

    Returns:
        ChatResponse with the reply, chat id, model and tools used.

    Raises:
        InvalidInputError: 400 for an empty request or too many files.
        NotFoundError / ForbiddenError: 404 / 403 for a bad chatId.
        CompletionClientError: 500 when the model call fails.
    """
    files = [
        UploadedFile(
            filename=upload.filename or "upload",
            content_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        for upload in (attachments or [])
    ]
    result = await orchestrator.handle_turn(
        ChatTurnRequest(
            user_id=user.id,
            message=message or "",
            chat_id=chatId or None,
            model=model or None,
            enabled_tools=parse_enabled_tools(enabledTools),
            files=files,
        )
    )
    return ChatResponse(
        response=result.text,
        chat_id=result.chat_id,
        model=result.model,
        tools_used=result.tools_used,
    )


@router.get("/chats", response_model=ChatListResponse)
def list_chats(
    user: User = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> ChatListResponse:
    return ChatListResponse(chats=store.list_chats(user.id))


@router.get("/chat/{chat_id}", response_model=ChatDetailResponse)
def get_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> ChatDetailResponse:
    return ChatDetailResponse(**store.get_chat_with_messages(chat_id, user.id))


@router.delete("/chat/{chat_id}")
def delete_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
    storage: UploadStorage = Depends(get_upload_storage),
) -> dict:
    for path in store.delete_chat(chat_id, user.id):
        try:
            storage.delete(path)
        except OSError as e:
            logger.warning("Failed to remove stored upload %s: %s", path, e)
    return {"message": "Chat deleted successfully"}
