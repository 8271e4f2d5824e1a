"""Test helper utilities."""

from tests.helpers.fake_completion import FakeCompletionClient
from tests.helpers.fake_workers import worker_command

__all__ = [
    "FakeCompletionClient",
    "worker_command",
]
