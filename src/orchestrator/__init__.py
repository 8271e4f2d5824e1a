"""Chat turn orchestration for WorkChat.

Main Entry Points:
    ChatOrchestrator: Drives one chat turn end-to-end (resolve chat, ingest
        attachments, call the completion model, run tool calls, persist).

Supporting Modules:
    chat_types: Tool call and chat turn dataclasses.
    tool_catalog: Schemas of the tools that can be offered to the model.
    transcript: System directive and transcript construction.
"""

from src.orchestrator.chat_types import (
    ChatTurnRequest,
    ChatTurnResult,
    CompletionResult,
    ToolCallRequest,
    ToolCallResult,
    ToolFailureKind,
    UploadedFile,
)

__all__ = [
    "ChatTurnRequest",
    "ChatTurnResult",
    "CompletionResult",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolFailureKind",
    "UploadedFile",
]
