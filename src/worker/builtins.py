"""Diagnostic tools every worker ships with."""

import os
import time

from src.worker.registry import ToolRegistry

TOKEN_ENV_VARS = (
    "GOOGLE_ACCESS_TOKEN",
    "GOOGLE_REFRESH_TOKEN",
    "GOOGLE_ID_TOKEN",
    "GOOGLE_TOKEN_EXPIRES_AT",
)


def register_builtins(registry: ToolRegistry) -> None:
    @registry.tool()
    def ping(**_: object) -> dict:
        """Liveness check."""
        return {"pong": True, "pid": os.getpid(), "time": time.time()}

    @registry.tool()
    def list_tools(**_: object) -> dict:
        """Names and descriptions of all registered tools."""
        return {"tools": registry.describe()}

    @registry.tool()
    def credential_status(**_: object) -> dict:
        """Which Google token variables are present (never their values)."""
        return {name: bool(os.environ.get(name)) for name in TOKEN_ENV_VARS}
