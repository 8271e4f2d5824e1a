"""Tests for ToolInvoker."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.errors.domain import WorkerNotReadyError
from src.orchestrator.chat_types import ToolFailureKind
from src.services.tool_invoker import ToolInvoker
from src.services.tool_worker_supervisor import ToolWorkerSupervisor
from tests.helpers.fake_workers import CRASHING_WORKER, ECHO_WORKER, worker_command


def _resolved(value) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def _mock_supervisor(**kwargs) -> MagicMock:
    supervisor = MagicMock(spec=ToolWorkerSupervisor)
    supervisor.submit = AsyncMock(**kwargs)
    return supervisor


class TestValidation:
    def test_non_positive_default_timeout_rejected(self):
        with pytest.raises(ValueError):
            ToolInvoker(MagicMock(), default_timeout=0)

    @pytest.mark.asyncio
    async def test_non_positive_timeout_rejected(self):
        invoker = ToolInvoker(_mock_supervisor())
        with pytest.raises(ValueError):
            await invoker.invoke("search_gmail", {}, timeout=0)
        with pytest.raises(ValueError):
            await invoker.invoke("search_gmail", {}, timeout=-1)

    @pytest.mark.asyncio
    async def test_empty_name_is_invocation_error(self):
        supervisor = _mock_supervisor()
        result = await ToolInvoker(supervisor).invoke("  ", {})
        assert result.ok is False
        assert result.failure is ToolFailureKind.invocation_error
        supervisor.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unserializable_arguments_are_invocation_error(self):
        supervisor = _mock_supervisor()
        result = await ToolInvoker(supervisor).invoke("search_gmail", {"when": object()})
        assert result.failure is ToolFailureKind.invocation_error
        assert "JSON-serializable" in result.error
        supervisor.submit.assert_not_called()


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_worker_not_ready_on_submit(self):
        supervisor = _mock_supervisor(side_effect=WorkerNotReadyError())
        result = await ToolInvoker(supervisor).invoke("search_gmail", {"q": "x"})
        assert result.ok is False
        assert result.failure is ToolFailureKind.worker_not_ready
        assert result.tool_name == "search_gmail"

    @pytest.mark.asyncio
    async def test_success_result_is_passed_through(self):
        supervisor = _mock_supervisor()
        supervisor.submit.return_value = _resolved({"id": "1", "ok": True, "result": {"messages": []}})
        result = await ToolInvoker(supervisor).invoke("search_gmail", {"q": "x"})
        assert result.ok is True
        assert result.result == {"messages": []}
        sent = supervisor.submit.call_args.args[0]
        assert sent["tool"] == "search_gmail"
        assert sent["args"] == {"q": "x"}
        assert sent["id"]

    @pytest.mark.asyncio
    async def test_non_dict_result_is_wrapped(self):
        supervisor = _mock_supervisor()
        supervisor.submit.return_value = _resolved({"id": "1", "ok": True, "result": [1, 2]})
        result = await ToolInvoker(supervisor).invoke("list_calendar_events")
        assert result.result == {"value": [1, 2]}

    @pytest.mark.asyncio
    async def test_error_response_is_invocation_error(self):
        supervisor = _mock_supervisor()
        supervisor.submit.return_value = _resolved({"id": "1", "ok": False, "error": "quota exceeded"})
        result = await ToolInvoker(supervisor).invoke("search_drive", {})
        assert result.failure is ToolFailureKind.invocation_error
        assert result.error == "quota exceeded"

    @pytest.mark.asyncio
    async def test_timeout_discards_pending_request(self):
        supervisor = _mock_supervisor()
        supervisor.submit.return_value = asyncio.get_running_loop().create_future()
        result = await ToolInvoker(supervisor).invoke("search_drive", {}, timeout=0.05)
        assert result.failure is ToolFailureKind.timeout
        request_id = supervisor.submit.call_args.args[0]["id"]
        supervisor.discard.assert_called_once_with(request_id)

    @pytest.mark.asyncio
    async def test_worker_exit_mid_call_is_worker_not_ready(self):
        future = asyncio.get_running_loop().create_future()
        future.set_exception(WorkerNotReadyError("Tool worker exited"))
        supervisor = _mock_supervisor(return_value=future)
        result = await ToolInvoker(supervisor).invoke("search_drive", {})
        assert result.failure is ToolFailureKind.worker_not_ready


@pytest.mark.integration
class TestAgainstRealWorker:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        sup = ToolWorkerSupervisor(command=worker_command(ECHO_WORKER), terminate_grace_seconds=1.0)
        try:
            await sup.start()
            assert await sup.wait_until_ready(timeout=10.0)
            invoker = ToolInvoker(sup, default_timeout=5.0)

            ok = await invoker.invoke("echo", {"q": "budget"})
            assert ok.ok is True
            assert ok.result == {"tool": "echo", "args": {"q": "budget"}}

            failed = await invoker.invoke("fail", {})
            assert failed.failure is ToolFailureKind.invocation_error
            assert failed.error == "boom"

            slow = await invoker.invoke("sleep", {"seconds": 2}, timeout=0.2)
            assert slow.failure is ToolFailureKind.timeout
        finally:
            await sup.shutdown()

    @pytest.mark.asyncio
    async def test_not_started_worker(self):
        sup = ToolWorkerSupervisor(command=worker_command(ECHO_WORKER))
        result = await ToolInvoker(sup).invoke("echo", {})
        assert result.failure is ToolFailureKind.worker_not_ready

    @pytest.mark.asyncio
    async def test_worker_crash_during_call(self):
        sup = ToolWorkerSupervisor(command=worker_command(CRASHING_WORKER), terminate_grace_seconds=1.0)
        try:
            await sup.start()
            assert await sup.wait_until_ready(timeout=10.0)
            result = await ToolInvoker(sup).invoke("anything", {}, timeout=5.0)
            assert result.failure is ToolFailureKind.worker_not_ready
        finally:
            await sup.shutdown()
