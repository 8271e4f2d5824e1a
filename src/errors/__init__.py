"""Error taxonomy for WorkChat.

Local, recoverable faults (one attachment, one tool call) are absorbed and
annotated by the orchestrator. Chat resolution and completion faults
propagate to the caller as request failures.
"""

from src.errors.domain import (
    AttachmentProcessingError,
    CompletionClientError,
    DomainError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    WorkerNotReadyError,
    WorkerSpawnError,
)

__all__ = [
    "DomainError",
    "InvalidInputError",
    "NotFoundError",
    "ForbiddenError",
    "AttachmentProcessingError",
    "CompletionClientError",
    "WorkerSpawnError",
    "WorkerNotReadyError",
]
