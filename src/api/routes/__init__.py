"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import chat, feedback, tools, worker

__all__ = [
    "chat",
    "feedback",
    "tools",
    "worker",
]
