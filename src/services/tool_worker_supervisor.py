"""Tool worker process supervisor.

Owns the single long-lived tool worker child process: spawns it with the
requesting user's Google tokens in its environment, watches its stdout for
the readiness sentinel, routes request/response lines, and records exits.

The worker speaks line-delimited JSON over stdio:

    stdin:  {"id": "<request id>", "tool": "<name>", "args": {...}}
    stdout: {"id": "<request id>", "ok": true, "result": {...}}
            {"id": "<request id>", "ok": false, "error": "..."}

Any other stdout line is diagnostic output. A line containing the ready
sentinel marks the worker ready to take requests.

Example:
    supervisor = ToolWorkerSupervisor(credential_provider=provider)
    await supervisor.start(user_id)
    if await supervisor.wait_until_ready(timeout=10.0):
        response = await supervisor.submit({"tool": "ping", "args": {}})
"""

import asyncio
import json
import logging
import os
import sys
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from src.errors.domain import WorkerNotReadyError, WorkerSpawnError
from src.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)

# Project root is parent of src/
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_READY_SENTINEL = "Tool worker ready"
DEFAULT_TERMINATE_GRACE_SECONDS = 5.0
# asyncio's default 64 KiB line limit is too small for file-reading tools.
STREAM_LIMIT = 16 * 1024 * 1024

GOOGLE_TOKEN_ENV_VARS = (
    "GOOGLE_ACCESS_TOKEN",
    "GOOGLE_REFRESH_TOKEN",
    "GOOGLE_ID_TOKEN",
    "GOOGLE_TOKEN_EXPIRES_AT",
)


class WorkerState(str, Enum):
    """Readiness of a worker process."""

    NOT_READY = "not_ready"
    READY = "ready"
    EXITED = "exited"


class CredentialSource(Protocol):
    """What the supervisor needs from the credential provider."""

    def get_tokens(self, user_id: str) -> Any:
        ...


@dataclass(frozen=True)
class WorkerStatus:
    """Point-in-time snapshot of the supervisor."""

    ready: bool
    running: bool
    pid: int | None = None
    user_id: str | None = None
    last_exit_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "running": self.running,
            "pid": self.pid,
            "user_id": self.user_id,
            "last_exit_code": self.last_exit_code,
        }


@dataclass
class _WorkerHandle:
    """One spawned worker process and its bookkeeping."""

    process: asyncio.subprocess.Process
    user_id: str | None
    state: WorkerState = WorkerState.NOT_READY
    pending: dict[str, asyncio.Future] = field(default_factory=dict)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.state is not WorkerState.EXITED and self.process.returncode is None

    def fail_pending(self, message: str) -> None:
        for future in self.pending.values():
            if not future.done():
                future.set_exception(WorkerNotReadyError(message))
        self.pending.clear()


def default_worker_command(python: str | None = None, module: str = "src.worker") -> list[str]:
    """Build the command line that launches the bundled worker runtime.

    ``WORKCHAT_WORKER_PYTHON`` overrides the interpreter, falling back to
    the current one.
    """
    interpreter = python or os.environ.get("WORKCHAT_WORKER_PYTHON") or sys.executable
    return [interpreter, "-m", module]


class ToolWorkerSupervisor:
    """Keeps at most one tool worker alive and exposes its readiness.

    start/restart/shutdown are serialized by one lock. Reads of the current
    handle (status, submit) never take that lock.
    """

    def __init__(
        self,
        credential_provider: CredentialSource | None = None,
        command: list[str] | None = None,
        ready_sentinel: str = DEFAULT_READY_SENTINEL,
        terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS,
        cwd: str | Path | None = None,
    ) -> None:
        self._credential_provider = credential_provider
        self._command = list(command) if command else default_worker_command()
        self._ready_sentinel = ready_sentinel
        self._terminate_grace_seconds = terminate_grace_seconds
        self._cwd = str(cwd) if cwd else str(PROJECT_ROOT)
        self._lock = asyncio.Lock()
        self._handle: _WorkerHandle | None = None
        self._last_exit_code: int | None = None
        self._last_user_id: str | None = None

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def is_ready(self) -> bool:
        handle = self._handle
        return handle is not None and handle.state is WorkerState.READY

    def status(self) -> WorkerStatus:
        handle = self._handle
        if handle is None:
            return WorkerStatus(
                ready=False,
                running=False,
                user_id=self._last_user_id,
                last_exit_code=self._last_exit_code,
            )
        return WorkerStatus(
            ready=handle.state is WorkerState.READY,
            running=handle.running,
            pid=handle.pid,
            user_id=handle.user_id,
            last_exit_code=self._last_exit_code,
        )

    async def start(self, user_id: str | None = None) -> WorkerStatus:
        """Replace any running worker with a fresh one.

        Returns as soon as the new process is spawned; readiness arrives
        later via the sentinel line.

        Args:
            user_id: User whose Google tokens are injected, if any.

        Returns:
            Status snapshot right after spawning.

        Raises:
            WorkerSpawnError: If the process could not be started.
        """
        async with self._lock:
            if self._handle is not None:
                await self._terminate(self._handle)

            env = self._build_env(user_id)
            logger.debug(
                "Spawning tool worker: %s (env: %s)",
                " ".join(self._command),
                redact_for_logging({k: v for k, v in env.items() if k.startswith("GOOGLE_")}),
            )
            try:
                process = await asyncio.create_subprocess_exec(
                    *self._command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                    cwd=self._cwd,
                    limit=STREAM_LIMIT,
                )
            except OSError as e:
                logger.error("Failed to spawn tool worker: %s", e)
                raise WorkerSpawnError(" ".join(self._command), str(e)) from e

            handle = _WorkerHandle(process=process, user_id=user_id)
            handle.tasks = [
                asyncio.create_task(self._read_stdout(handle)),
                asyncio.create_task(self._read_stderr(handle)),
                asyncio.create_task(self._watch_exit(handle)),
            ]
            self._handle = handle
            self._last_user_id = user_id
            logger.info(
                "Started tool worker (PID: %s, user: %s)",
                process.pid, user_id or "none",
            )
            return self.status()

    async def restart(self, user_id: str | None = None) -> WorkerStatus:
        """Alias of :meth:`start`; kept for the route and post-login call sites."""
        return await self.start(user_id)

    async def shutdown(self) -> None:
        """Terminate the worker, if any. Used on server shutdown."""
        async with self._lock:
            if self._handle is not None:
                await self._terminate(self._handle)

    async def wait_until_ready(self, timeout: float, poll_interval: float = 0.05) -> bool:
        """Poll readiness until it is observed or ``timeout`` elapses."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if self.is_ready():
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(poll_interval)

    async def submit(self, message: dict[str, Any]) -> asyncio.Future:
        """Send one request line to the ready worker.

        Args:
            message: ``{"tool": ..., "args": ...}``. An ``id`` is assigned
                when absent.

        Returns:
            Future resolved with the worker's response dict. It fails with
            WorkerNotReadyError if the worker exits first.

        Raises:
            WorkerNotReadyError: If no ready worker exists or the write fails.
        """
        handle = self._handle
        if handle is None or handle.state is not WorkerState.READY:
            raise WorkerNotReadyError()

        request_id = str(message.get("id") or uuid.uuid4().hex)
        line = json.dumps({**message, "id": request_id}) + "\n"
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        handle.pending[request_id] = future

        try:
            async with handle.write_lock:
                if handle.process.stdin is None or handle.process.stdin.is_closing():
                    raise WorkerNotReadyError("Tool worker stdin is closed")
                handle.process.stdin.write(line.encode())
                await handle.process.stdin.drain()
        except (ConnectionError, WorkerNotReadyError) as e:
            handle.pending.pop(request_id, None)
            # The worker may have been retired mid-drain and failed this future.
            if future.done():
                future.exception()
            else:
                future.cancel()
            raise WorkerNotReadyError(str(e)) from e

        logger.debug("Sent tool worker request %s: %s", request_id, message.get("tool"))
        return future

    def discard(self, request_id: str) -> None:
        """Drop a pending request whose caller gave up waiting."""
        handle = self._handle
        if handle is not None:
            handle.pending.pop(request_id, None)

    def _build_env(self, user_id: str | None) -> dict[str, str]:
        """Inherit the server environment minus any stale Google tokens.

        Token lookup failures are logged; the worker still starts without
        them so non-Google tools stay usable.
        """
        env = {k: v for k, v in os.environ.items() if k not in GOOGLE_TOKEN_ENV_VARS}
        if user_id is None or self._credential_provider is None:
            return env

        try:
            tokens = self._credential_provider.get_tokens(user_id)
        except Exception as e:
            logger.warning("Credential lookup failed for user %s: %s", user_id, e)
            return env

        if tokens is None:
            logger.warning("No stored Google tokens for user %s; starting worker without them", user_id)
            return env

        env.update(tokens.to_env())
        return env

    async def _terminate(self, handle: _WorkerHandle) -> None:
        """SIGTERM, bounded grace, SIGKILL; always awaits the exit."""
        process = handle.process
        handle.state = WorkerState.EXITED
        if process.returncode is None:
            logger.info("Stopping tool worker (PID: %s)", process.pid)
            try:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self._terminate_grace_seconds)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Tool worker %s ignored SIGTERM for %.1fs, killing",
                        process.pid, self._terminate_grace_seconds,
                    )
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                await process.wait()

        # The exit watcher records the code; wait for it so the handle is
        # fully retired before a replacement is spawned.
        for task in handle.tasks:
            if not task.done():
                try:
                    await asyncio.wait_for(asyncio.shield(task), timeout=1.0)
                except asyncio.TimeoutError:
                    task.cancel()
        self._retire(handle, process.returncode)

    def _retire(self, handle: _WorkerHandle, exit_code: int | None) -> None:
        handle.state = WorkerState.EXITED
        handle.fail_pending("Tool worker exited")
        if self._handle is handle:
            self._handle = None
            self._last_exit_code = exit_code

    async def _read_stdout(self, handle: _WorkerHandle) -> None:
        stream = handle.process.stdout
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line exceeded STREAM_LIMIT; the remainder is discarded.
                logger.warning("Tool worker %s wrote an oversized line", handle.pid)
                continue
            if not raw:
                return
            self._handle_stdout_line(handle, raw.decode(errors="replace").rstrip("\r\n"))

    def _handle_stdout_line(self, handle: _WorkerHandle, line: str) -> None:
        response = _parse_response(line)
        if response is not None:
            future = handle.pending.pop(str(response["id"]), None)
            if future is None:
                logger.debug("Dropping response for unknown request %s", response["id"])
            elif not future.done():
                future.set_result(response)
            return

        if self._ready_sentinel in line:
            if self._handle is handle and handle.state is WorkerState.NOT_READY:
                handle.state = WorkerState.READY
                logger.info("Tool worker ready (PID: %s)", handle.pid)
            return

        logger.debug("Tool worker stdout: %s", line)

    async def _read_stderr(self, handle: _WorkerHandle) -> None:
        stream = handle.process.stderr
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                continue
            if not raw:
                return
            logger.warning("Tool worker stderr: %s", raw.decode(errors="replace").rstrip())

    async def _watch_exit(self, handle: _WorkerHandle) -> None:
        exit_code = await handle.process.wait()
        if self._handle is handle and handle.state is not WorkerState.EXITED:
            logger.error("Tool worker %s exited unexpectedly with code %s", handle.pid, exit_code)
        else:
            logger.info("Tool worker %s exited with code %s", handle.pid, exit_code)
        self._retire(handle, exit_code)


def _parse_response(line: str) -> dict[str, Any] | None:
    """Return the decoded response if ``line`` is a protocol response."""
    stripped = line.strip()
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or "id" not in data or "ok" not in data:
        return None
    return data
