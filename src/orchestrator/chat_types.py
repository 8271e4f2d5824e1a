"""Shared types for the chat turn pipeline.

Tool calls flow completion client -> invoker -> orchestrator as plain
dataclasses. They live only for the duration of one request; the only
persisted trace is the assistant message's ``tools_used`` list.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4


class ToolFailureKind(str, Enum):
    """Typed reasons a tool invocation can fail."""

    timeout = "timeout"
    worker_not_ready = "worker_not_ready"
    invocation_error = "invocation_error"


@dataclass(frozen=True)
class ToolCallRequest:
    """A single tool invocation requested by the completion model.

    Attributes:
        name: Tool name as offered in the tool schema.
        arguments: JSON-shaped argument payload, passed to the worker opaquely.
        call_id: Correlation id for logging (model-assigned when available).
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str = field(default_factory=lambda: f"call_{uuid4().hex[:12]}")


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of one tool invocation: a result payload or a typed failure."""

    tool_name: str
    ok: bool
    result: dict[str, Any] | None = None
    failure: ToolFailureKind | None = None
    error: str | None = None
    duration_ms: int = 0

    @classmethod
    def success(
        cls, tool_name: str, result: dict[str, Any], duration_ms: int = 0,
    ) -> "ToolCallResult":
        return cls(tool_name=tool_name, ok=True, result=result, duration_ms=duration_ms)

    @classmethod
    def failed(
        cls,
        tool_name: str,
        kind: ToolFailureKind,
        error: str,
        duration_ms: int = 0,
    ) -> "ToolCallResult":
        return cls(
            tool_name=tool_name,
            ok=False,
            failure=kind,
            error=error,
            duration_ms=duration_ms,
        )

    def annotation(self) -> str:
        """Human-readable line folded into the assistant reply."""
        if self.ok:
            payload = json.dumps(self.result, ensure_ascii=False, default=str)
            return f"[Tool: {self.tool_name} succeeded] {payload}"
        kind = self.failure.value if self.failure else ToolFailureKind.invocation_error.value
        return f"[Tool: {self.tool_name} failed ({kind}): {self.error}]"


@dataclass(frozen=True)
class CompletionResult:
    """What the completion model returned for one turn.

    Either ``tool_calls`` is non-empty (tool calls requested) or the turn is
    a final text answer. Text may accompany tool calls.
    """

    text: str
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    model: str = ""
    stop_reason: str | None = None

    @property
    def requests_tools(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class UploadedFile:
    """One file received with a chat request, already read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ChatTurnRequest:
    """Inbound chat turn, independent of the HTTP layer.

    Attributes:
        user_id: Authenticated user.
        message: User text (may be empty when files are attached).
        chat_id: Existing chat id, or None / "new" to create one.
        model: Completion model identifier; None selects the default.
        enabled_tools: Explicit allow-list of tool names for this turn.
        files: Uploaded attachments, in upload order.
    """

    user_id: str
    message: str = ""
    chat_id: str | None = None
    model: str | None = None
    enabled_tools: list[str] = field(default_factory=list)
    files: list[UploadedFile] = field(default_factory=list)


@dataclass
class ChatTurnResult:
    """Response of one chat turn."""

    text: str
    chat_id: str
    model: str
    tools_used: list[str] = field(default_factory=list)
    user_message_id: str = ""
    assistant_message_id: str = ""
    attachment_ids: list[str] = field(default_factory=list)
