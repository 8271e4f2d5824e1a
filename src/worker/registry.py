"""Tool registry for the worker runtime.

Handlers are registered by name and receive the request ``args`` as keyword
arguments. They may be plain functions or coroutines and must return a
JSON-serializable dict.

Example:
    from src.worker.registry import registry

    @registry.tool()
    async def drive_search_files(query: str, limit: int = 10) -> dict:
        ...
"""

import inspect
from collections.abc import Callable
from typing import Any

ToolHandler = Callable[..., Any]


class UnknownToolError(LookupError):
    """No handler is registered under the requested name."""


class ToolRegistry:
    """Name -> handler mapping with a decorator for registration."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._descriptions: dict[str, str] = {}

    def tool(self, name: str | None = None, description: str | None = None):
        def decorator(fn: ToolHandler) -> ToolHandler:
            self.register(name or fn.__name__, fn, description)
            return fn
        return decorator

    def register(self, name: str, handler: ToolHandler, description: str | None = None) -> None:
        if not name:
            raise ValueError("Tool name must be non-empty")
        if name in self._handlers:
            raise ValueError(f"Tool '{name}' is already registered")
        self._handlers[name] = handler
        doc = inspect.getdoc(handler) or ""
        self._descriptions[name] = description or (doc.splitlines()[0] if doc else "")

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def describe(self) -> list[dict[str, str]]:
        return [{"name": n, "description": self._descriptions[n]} for n in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    async def call(self, name: str, args: dict[str, Any]) -> Any:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        result = handler(**args)
        if inspect.isawaitable(result):
            result = await result
        return result


registry = ToolRegistry()
