"""One chat turn, end to end.

    ResolveChat -> IngestAttachments -> BuildTranscript -> RequestCompletion
        -> (ResolveToolCalls -> FoldResults) -> PersistAssistantMessage -> Respond

Per-file and per-tool faults are absorbed into the transcript text. Chat
resolution faults and completion failures propagate; in the latter case the
user message is already persisted but no assistant message is written.

Example:
    orchestrator = ChatOrchestrator(store, storage, completion, invoker)
    result = await orchestrator.handle_turn(ChatTurnRequest(user_id=..., message="Hi"))
"""

import asyncio
import logging
from collections.abc import Callable

from src.db.models import Chat, MessageRole
from src.errors.domain import AttachmentProcessingError, InvalidInputError
from src.orchestrator.chat_types import (
    ChatTurnRequest,
    ChatTurnResult,
    ToolCallResult,
    ToolFailureKind,
    UploadedFile,
)
from src.orchestrator.tool_catalog import schemas_for
from src.orchestrator.transcript import build_transcript
from src.services.completion_client import CompletionBackend
from src.services.conversation_store import ConversationStore
from src.services.file_parser import FileParseError, parse_file
from src.services.tool_invoker import ToolInvoker
from src.services.upload_storage import UploadStorage

logger = logging.getLogger(__name__)

MAX_ATTACHMENTS = 5
FILE_CONCURRENCY = 2
TITLE_MAX_CHARS = 50
FILE_UPLOAD_TITLE = "File Upload"
NEW_CHAT_ID = "new"


def derive_title(message: str) -> str:
    """First 50 characters of the message, with '...' when truncated."""
    text = message.strip()
    if not text:
        return FILE_UPLOAD_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


def file_block(name: str, content: str) -> str:
    return f"\n\n--- File: {name} ---\n{content}"


def file_error_block(name: str, error: str) -> str:
    return f"\n\n--- File: {name} ---\nError processing file: {error}"


class ChatOrchestrator:
    """Drives chat turns against one conversation store.

    Args:
        store: Conversation store bound to the request's session.
        storage: Upload storage for attachment bytes.
        completion: Completion backend.
        invoker: Tool invoker over the supervised worker.
        parser: ``(data, filename, mime_type) -> text``; defaults to
            :func:`parse_file`.
        file_concurrency: Files stored and parsed at once.
    """

    def __init__(
        self,
        store: ConversationStore,
        storage: UploadStorage,
        completion: CompletionBackend,
        invoker: ToolInvoker,
        parser: Callable[[bytes, str, str], str] = parse_file,
        file_concurrency: int = FILE_CONCURRENCY,
    ) -> None:
        self._store = store
        self._storage = storage
        self._completion = completion
        self._invoker = invoker
        self._parser = parser
        self._file_concurrency = max(1, file_concurrency)

    async def handle_turn(self, request: ChatTurnRequest) -> ChatTurnResult:
        """Run one chat turn.

        Raises:
            InvalidInputError: Empty message without files, or too many files.
            NotFoundError: ``chat_id`` does not exist.
            ForbiddenError: ``chat_id`` belongs to another user.
            CompletionClientError: The completion call failed.
        """
        self._validate(request)

        chat = self._resolve_chat(request)
        model = request.model or self._completion.default_model
        logger.info(
            "Chat turn for chat %s (user %s, model %s, %d files, tools=%s)",
            chat.id, request.user_id, model, len(request.files), request.enabled_tools,
        )

        attachment_ids, file_blocks = await self._ingest_attachments(
            request.user_id, request.files,
        )
        user_content = request.message + "".join(file_blocks)

        user_message = self._store.append_message(
            chat.id,
            request.user_id,
            MessageRole.user,
            user_content,
            attachment_ids=attachment_ids,
        )
        for attachment_id in attachment_ids:
            self._store.link_attachment(attachment_id, user_message.id)

        transcript = build_transcript(user_content, request.enabled_tools)
        completion = await self._completion.complete(
            transcript, schemas_for(request.enabled_tools), model,
        )

        reply_parts = [completion.text] if completion.text else []
        tools_used: list[str] = []
        if completion.requests_tools:
            logger.info(
                "Completion requested %d tool call(s) for chat %s: %s",
                len(completion.tool_calls), chat.id,
                [call.name for call in completion.tool_calls],
            )
            for call in completion.tool_calls:
                tools_used.append(call.name)
                result = await self._run_tool(call.name, call.arguments, request.enabled_tools)
                reply_parts.append(result.annotation())
        reply = "\n\n".join(reply_parts)

        assistant_message = self._store.append_message(
            chat.id,
            request.user_id,
            MessageRole.assistant,
            reply,
            model=model,
            tools_used=tools_used,
        )
        self._store.touch_chat(chat.id)

        return ChatTurnResult(
            text=reply,
            chat_id=chat.id,
            model=model,
            tools_used=tools_used,
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            attachment_ids=attachment_ids,
        )

    def _validate(self, request: ChatTurnRequest) -> None:
        if not request.message.strip() and not request.files:
            raise InvalidInputError("Message or files required")
        if len(request.files) > MAX_ATTACHMENTS:
            raise InvalidInputError(
                f"At most {MAX_ATTACHMENTS} attachments are allowed per message"
            )

    def _resolve_chat(self, request: ChatTurnRequest) -> Chat:
        if not request.chat_id or request.chat_id == NEW_CHAT_ID:
            return self._store.create_chat(request.user_id, derive_title(request.message))
        return self._store.get_chat_for_user(request.chat_id, request.user_id)

    async def _ingest_attachments(
        self, user_id: str, files: list[UploadedFile],
    ) -> tuple[list[str], list[str]]:
        """Store, register and parse every file; blocks keep upload order."""
        if not files:
            return [], []

        semaphore = asyncio.Semaphore(self._file_concurrency)

        async def ingest(upload: UploadedFile) -> tuple[str | None, str]:
            async with semaphore:
                return await self._ingest_one(user_id, upload)

        outcomes = await asyncio.gather(*(ingest(f) for f in files))
        attachment_ids = [aid for aid, _ in outcomes if aid is not None]
        blocks = [block for _, block in outcomes]
        return attachment_ids, blocks

    async def _ingest_one(self, user_id: str, upload: UploadedFile) -> tuple[str | None, str]:
        name = upload.filename or "upload"
        try:
            filename, storage_path = await asyncio.to_thread(
                self._storage.save, user_id, name, upload.data,
            )
            attachment = self._store.create_attachment(
                user_id=user_id,
                filename=filename,
                original_name=name,
                mime_type=upload.content_type,
                file_size=upload.size,
                storage_path=storage_path,
            )
        except (AttachmentProcessingError, OSError) as e:
            logger.warning("Failed to store attachment %s: %s", name, e)
            return None, file_error_block(name, str(e))

        # The stored row must still be linked, whatever the parser raises.
        try:
            content = await asyncio.to_thread(
                self._parser, upload.data, name, upload.content_type,
            )
        except FileParseError as e:
            logger.warning("Failed to parse attachment %s: %s", name, e)
            return attachment.id, file_error_block(name, str(e))
        except Exception as e:
            logger.warning("Parser crashed on attachment %s: %s", name, e, exc_info=True)
            return attachment.id, file_error_block(name, str(e) or type(e).__name__)
        return attachment.id, file_block(name, content)

    async def _run_tool(
        self, name: str, arguments: dict, enabled_tools: list[str],
    ) -> ToolCallResult:
        if name not in enabled_tools:
            logger.warning("Model requested tool %s outside the allow-list", name)
            return ToolCallResult.failed(
                name, ToolFailureKind.invocation_error, "Tool is not enabled for this chat",
            )
        return await self._invoker.invoke(name, arguments)
