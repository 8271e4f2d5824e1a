"""FastAPI dependencies for the long-lived services held on ``app.state``.

The lifespan in :mod:`src.api.main` builds one supervisor, invoker,
completion client, credential provider and upload storage per process.
Routes reach them through these functions so tests can override each one.
"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from src.db.connection import get_db
from src.orchestrator.chat_orchestrator import ChatOrchestrator
from src.services.completion_client import CompletionBackend
from src.services.conversation_store import ConversationStore
from src.services.credential_provider import CredentialProvider
from src.services.tool_invoker import ToolInvoker
from src.services.tool_worker_supervisor import ToolWorkerSupervisor
from src.services.upload_storage import UploadStorage


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return value


def get_supervisor(request: Request) -> ToolWorkerSupervisor:
    return _state(request, "supervisor")


def get_invoker(request: Request) -> ToolInvoker:
    return _state(request, "invoker")


def get_completion_client(request: Request) -> CompletionBackend:
    return _state(request, "completion_client")


def get_credential_provider(request: Request) -> CredentialProvider:
    return _state(request, "credential_provider")


def get_upload_storage(request: Request) -> UploadStorage:
    return _state(request, "upload_storage")


def get_conversation_store(db: Session = Depends(get_db)) -> ConversationStore:
    return ConversationStore(db)


def get_orchestrator(
    store: ConversationStore = Depends(get_conversation_store),
    storage: UploadStorage = Depends(get_upload_storage),
    completion: CompletionBackend = Depends(get_completion_client),
    invoker: ToolInvoker = Depends(get_invoker),
) -> ChatOrchestrator:
    return ChatOrchestrator(store, storage, completion, invoker)
