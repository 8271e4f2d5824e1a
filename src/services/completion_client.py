"""Completion model client over the Anthropic Messages API.

Turns a transcript and tool schemas into a CompletionResult: the text the
model produced and any tool calls it requested, in model order.
"""

import logging
import os
from typing import Any, Protocol

import anthropic
from anthropic import AsyncAnthropic

from src.errors.domain import CompletionClientError
from src.orchestrator.chat_types import CompletionResult, ToolCallRequest
from src.orchestrator.transcript import TranscriptTurn

logger = logging.getLogger(__name__)


def get_default_model() -> str:
    """Resolve the default model: AGENT_MODEL, then ANTHROPIC_MODEL, then Haiku."""
    return (
        os.environ.get("AGENT_MODEL")
        or os.environ.get("ANTHROPIC_MODEL")
        or "claude-haiku-4-5-20251001"
    )


DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_SECONDS = 120.0


class CompletionBackend(Protocol):
    """What the orchestrator needs from a completion client."""

    default_model: str

    async def complete(
        self,
        transcript: list[TranscriptTurn],
        tool_schemas: list[dict[str, Any]],
        model: str | None = None,
    ) -> CompletionResult:
        ...


class CompletionClient:
    """Single-shot completion with optional tool use.

    Args:
        client: Preconfigured AsyncAnthropic client. Built from the
            environment (ANTHROPIC_API_KEY) when omitted.
        default_model: Model used when a turn does not name one.
        max_tokens: Output token cap per completion.
        temperature: Sampling temperature.
        timeout_seconds: Request timeout for the underlying HTTP client.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        default_model: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client or AsyncAnthropic(timeout=timeout_seconds, max_retries=2)
        self.default_model = default_model or get_default_model()
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def complete(
        self,
        transcript: list[TranscriptTurn],
        tool_schemas: list[dict[str, Any]],
        model: str | None = None,
    ) -> CompletionResult:
        """Request one completion.

        System turns are joined into the ``system`` parameter; the others
        become ``messages``. Tools are passed only when schemas are given.

        Raises:
            CompletionClientError: On any API or transport failure.
        """
        model = model or self.default_model
        system = "\n\n".join(t.content for t in transcript if t.role == "system")
        messages = [
            {"role": t.role, "content": t.content}
            for t in transcript
            if t.role != "system"
        ]

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if tool_schemas:
            kwargs["tools"] = tool_schemas
            kwargs["tool_choice"] = {"type": "auto"}

        logger.info("Calling %s with %d tools", model, len(tool_schemas))
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("Completion request failed for model %s: %s", model, e)
            raise CompletionClientError(f"Completion request failed: {e}", model=model) from e

        return _to_result(response, model)


def _to_result(response: Any, requested_model: str) -> CompletionResult:
    texts: list[str] = []
    tool_calls: list[ToolCallRequest] = []
    for block in response.content or []:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            texts.append(block.text)
        elif block_type == "tool_use":
            arguments = block.input if isinstance(block.input, dict) else {}
            tool_calls.append(
                ToolCallRequest(name=block.name, arguments=arguments, call_id=block.id)
            )

    return CompletionResult(
        text="".join(texts),
        tool_calls=tool_calls,
        model=getattr(response, "model", None) or requested_model,
        stop_reason=getattr(response, "stop_reason", None),
    )
