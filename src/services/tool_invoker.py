"""Executes one tool call against the supervised tool worker.

Every outcome is a ToolCallResult; the only exception raised to callers is
ValueError for a non-positive timeout. The invoker never waits for the
worker to become ready and never takes the supervisor's start/restart lock.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any

from src.errors.domain import WorkerNotReadyError
from src.orchestrator.chat_types import ToolCallResult, ToolFailureKind
from src.services.tool_worker_supervisor import ToolWorkerSupervisor
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_INVOKE_TIMEOUT_SECONDS = 30.0


class ToolInvoker:
    """Sends tool calls to the current worker and waits for each answer.

    Args:
        supervisor: Supervisor owning the worker process.
        default_timeout: Per-call timeout in seconds when none is given.
    """

    def __init__(
        self,
        supervisor: ToolWorkerSupervisor,
        default_timeout: float = DEFAULT_INVOKE_TIMEOUT_SECONDS,
    ) -> None:
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self._supervisor = supervisor
        self._default_timeout = default_timeout

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ToolCallResult:
        """Run one tool on the worker.

        Args:
            name: Tool name.
            arguments: JSON-serializable argument dict.
            timeout: Seconds to wait for the response.

        Returns:
            Success with the worker's result, or a typed failure.

        Raises:
            ValueError: If ``timeout`` is not positive.
        """
        if timeout is None:
            timeout = self._default_timeout
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        if not name or not name.strip():
            return ToolCallResult.failed(
                name or "", ToolFailureKind.invocation_error, "Tool name is required",
            )
        arguments = arguments if arguments is not None else {}
        try:
            json.dumps(arguments)
        except (TypeError, ValueError) as e:
            return ToolCallResult.failed(
                name, ToolFailureKind.invocation_error,
                f"Arguments are not JSON-serializable: {e}",
            )

        request_id = uuid.uuid4().hex
        try:
            future = await self._supervisor.submit(
                {"id": request_id, "tool": name, "args": arguments}
            )
        except WorkerNotReadyError as e:
            logger.info("Tool %s skipped: %s", name, e)
            return ToolCallResult.failed(
                name, ToolFailureKind.worker_not_ready, str(e), elapsed_ms(),
            )

        try:
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self._supervisor.discard(request_id)
            logger.warning("Tool %s timed out after %.1fs", name, timeout)
            return ToolCallResult.failed(
                name, ToolFailureKind.timeout,
                f"No response within {timeout:g} seconds", elapsed_ms(),
            )
        except WorkerNotReadyError as e:
            logger.warning("Tool %s lost its worker mid-call: %s", name, e)
            return ToolCallResult.failed(
                name, ToolFailureKind.worker_not_ready, str(e), elapsed_ms(),
            )

        if not response.get("ok"):
            error = sanitize_error_message(str(response.get("error") or "Unknown tool error"))
            logger.info("Tool %s failed: %s", name, error)
            return ToolCallResult.failed(
                name, ToolFailureKind.invocation_error, error, elapsed_ms(),
            )

        result = response.get("result")
        if not isinstance(result, dict):
            result = {"value": result}
        logger.info("Tool %s succeeded in %dms", name, elapsed_ms())
        return ToolCallResult.success(name, result, elapsed_ms())
