"""Tests for CompletionClient with a mocked AsyncAnthropic client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from src.errors.domain import CompletionClientError
from src.orchestrator.tool_catalog import schemas_for
from src.orchestrator.transcript import build_transcript
from src.services.completion_client import CompletionClient, get_default_model


def _response(*blocks, model="claude-haiku-4-5-20251001", stop_reason="end_turn"):
    return SimpleNamespace(content=list(blocks), model=model, stop_reason=stop_reason)


def _text(text):
    return SimpleNamespace(type="text", text=text)


def _tool_use(name, arguments, block_id="toolu_1"):
    return SimpleNamespace(type="tool_use", name=name, input=arguments, id=block_id)


def _client(response=None, error=None):
    sdk = MagicMock()
    sdk.messages.create = AsyncMock(return_value=response, side_effect=error)
    return sdk


class TestDefaultModel:
    def test_agent_model_wins(self, monkeypatch):
        monkeypatch.setenv("AGENT_MODEL", "a")
        monkeypatch.setenv("ANTHROPIC_MODEL", "b")
        assert get_default_model() == "a"

    def test_anthropic_model_fallback(self, monkeypatch):
        monkeypatch.delenv("AGENT_MODEL", raising=False)
        monkeypatch.setenv("ANTHROPIC_MODEL", "b")
        assert get_default_model() == "b"

    def test_builtin_default(self, monkeypatch):
        monkeypatch.delenv("AGENT_MODEL", raising=False)
        monkeypatch.delenv("ANTHROPIC_MODEL", raising=False)
        assert get_default_model() == "claude-haiku-4-5-20251001"


class TestComplete:
    @pytest.mark.asyncio
    async def test_request_shape_with_tools(self):
        sdk = _client(_response(_text("hi")))
        client = CompletionClient(client=sdk, default_model="m-default")
        transcript = build_transcript("Find Q1 proposal", ["drive_search_files"])

        await client.complete(transcript, schemas_for(["drive_search_files"]))

        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["model"] == "m-default"
        assert kwargs["max_tokens"] == 2000
        assert kwargs["temperature"] == 0.7
        assert "drive_search_files" in kwargs["system"]
        assert kwargs["messages"] == [{"role": "user", "content": "Find Q1 proposal"}]
        assert [t["name"] for t in kwargs["tools"]] == ["drive_search_files"]
        assert kwargs["tool_choice"] == {"type": "auto"}

    @pytest.mark.asyncio
    async def test_no_tools_parameter_without_schemas(self):
        sdk = _client(_response(_text("hi")))
        await CompletionClient(client=sdk).complete(build_transcript("hello", []), [], model="m-x")
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["model"] == "m-x"
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs

    @pytest.mark.asyncio
    async def test_parses_text_and_tool_calls_in_order(self):
        sdk = _client(_response(
            _text("Let me look. "),
            _tool_use("drive_search_files", {"query": "Q1 proposal"}, "toolu_a"),
            _tool_use("gmail_list_messages", {"query": "Q1"}, "toolu_b"),
            stop_reason="tool_use",
        ))
        result = await CompletionClient(client=sdk).complete(build_transcript("x", []), [])

        assert result.text == "Let me look. "
        assert [c.name for c in result.tool_calls] == ["drive_search_files", "gmail_list_messages"]
        assert result.tool_calls[0].arguments == {"query": "Q1 proposal"}
        assert result.tool_calls[0].call_id == "toolu_a"
        assert result.requests_tools is True
        assert result.stop_reason == "tool_use"

    @pytest.mark.asyncio
    async def test_api_error_becomes_completion_error(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        sdk = _client(error=anthropic.APIConnectionError(request=request))
        with pytest.raises(CompletionClientError) as exc_info:
            await CompletionClient(client=sdk, default_model="m").complete(build_transcript("x", []), [])
        assert exc_info.value.model == "m"
