"""Typed domain exceptions for API error mapping.

Routes catch these types to return the right HTTP status instead of
matching on message strings.

Usage:
    # In service layer
    raise NotFoundError("Chat", chat_id)

    # In route handler
    try:
        result = await orchestrator.handle_turn(request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidInputError(DomainError):
    """Request rejected before any side effect. Maps to HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ForbiddenError(DomainError):
    """Resource belongs to another user. Maps to HTTP 403."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"Access to {resource_type} '{identifier}' denied")
        self.resource_type = resource_type
        self.identifier = identifier


class AttachmentProcessingError(DomainError):
    """One uploaded file could not be stored or parsed.

    Never aborts a chat turn; the orchestrator folds it into the user
    message as an inline error block.
    """

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(reason)
        self.file_name = file_name
        self.reason = reason


class CompletionClientError(DomainError):
    """The completion model call failed. Fatal for the chat turn."""

    def __init__(self, message: str, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model


class WorkerSpawnError(DomainError):
    """The tool worker process could not be started."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"Failed to start tool worker '{command}': {reason}")
        self.command = command
        self.reason = reason


class WorkerNotReadyError(DomainError):
    """No ready tool worker is available to take a request."""

    def __init__(self, message: str = "Tool worker is not ready") -> None:
        super().__init__(message)
