"""Line-delimited JSON request loop of the tool worker.

stdout carries only protocol output: the ready sentinel and one response
line per request. Diagnostics go to stderr through logging.
"""

import asyncio
import importlib
import json
import logging
import os
import sys
from typing import IO, Any

from src.worker.builtins import register_builtins
from src.worker.registry import ToolRegistry, UnknownToolError, registry

logger = logging.getLogger(__name__)

READY_SENTINEL = "Tool worker ready"
PLUGINS_ENV_VAR = "WORKCHAT_WORKER_PLUGINS"


def load_plugins(modules: str | None) -> list[str]:
    """Import comma-separated plugin modules; they register tools on import."""
    loaded = []
    for module_name in (modules or "").split(","):
        module_name = module_name.strip()
        if not module_name:
            continue
        importlib.import_module(module_name)
        loaded.append(module_name)
        logger.info("Loaded worker plugin %s", module_name)
    return loaded


async def handle_line(tools: ToolRegistry, line: str) -> dict[str, Any] | None:
    """Answer one request line. Returns None for blank lines."""
    line = line.strip()
    if not line:
        return None

    try:
        request = json.loads(line)
    except json.JSONDecodeError as e:
        return {"id": None, "ok": False, "error": f"Invalid JSON: {e}"}
    if not isinstance(request, dict):
        return {"id": None, "ok": False, "error": "Request must be a JSON object"}

    request_id = request.get("id")
    name = request.get("tool")
    args = request.get("args") or {}
    if not isinstance(name, str) or not name:
        return {"id": request_id, "ok": False, "error": "Missing tool name"}
    if not isinstance(args, dict):
        return {"id": request_id, "ok": False, "error": "args must be an object"}

    try:
        result = await tools.call(name, args)
    except UnknownToolError as e:
        return {"id": request_id, "ok": False, "error": str(e)}
    except TypeError as e:
        return {"id": request_id, "ok": False, "error": f"Invalid arguments for {name}: {e}"}
    except Exception as e:
        logger.exception("Tool %s raised", name)
        return {"id": request_id, "ok": False, "error": f"{type(e).__name__}: {e}"}

    try:
        json.dumps(result)
    except (TypeError, ValueError) as e:
        return {"id": request_id, "ok": False, "error": f"{name} returned a non-JSON result: {e}"}
    return {"id": request_id, "ok": True, "result": result}


def _emit(stream: IO[str], payload: str) -> None:
    stream.write(payload + "\n")
    stream.flush()


async def serve(
    tools: ToolRegistry,
    stdin: IO[str],
    stdout: IO[str],
    sentinel: str = READY_SENTINEL,
) -> int:
    """Run until EOF on stdin. Returns the process exit code."""
    loop = asyncio.get_running_loop()
    _emit(stdout, sentinel)
    while True:
        line = await loop.run_in_executor(None, stdin.readline)
        if not line:
            logger.info("stdin closed, exiting")
            return 0
        response = await handle_line(tools, line)
        if response is not None:
            _emit(stdout, json.dumps(response, default=str))


def main() -> int:
    logging.basicConfig(
        level=os.environ.get("WORKCHAT_WORKER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    register_builtins(registry)
    load_plugins(os.environ.get(PLUGINS_ENV_VAR))
    logger.info("Registered tools: %s", ", ".join(registry.names()))
    return asyncio.run(serve(registry, sys.stdin, sys.stdout))
