"""Pytest fixtures for API tests.

The client is created without entering the app lifespan, so no worker
process is spawned and the real database is never touched. Every
``app.state`` service is replaced through dependency overrides.
"""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api.dependencies import (
    get_completion_client,
    get_credential_provider,
    get_invoker,
    get_supervisor,
    get_upload_storage,
)
from src.api.main import app
from src.api.middleware.auth import issue_session_token
from src.db.connection import get_db
from src.db.models import User
from src.orchestrator.chat_types import ToolCallResult
from src.services.credential_provider import CredentialProvider
from src.services.tool_invoker import ToolInvoker
from src.services.tool_worker_supervisor import ToolWorkerSupervisor, WorkerStatus
from src.services.upload_storage import LocalUploadStorage
from tests.helpers import FakeCompletionClient


@pytest.fixture
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def supervisor() -> MagicMock:
    sup = MagicMock(spec=ToolWorkerSupervisor)
    sup.status.return_value = WorkerStatus(ready=True, running=True, pid=4242, user_id="someone")
    sup.restart = AsyncMock(
        return_value=WorkerStatus(ready=False, running=True, pid=4343, user_id="someone")
    )
    return sup


@pytest.fixture
def invoker() -> MagicMock:
    inv = MagicMock(spec=ToolInvoker)
    inv.invoke = AsyncMock(
        side_effect=lambda name, arguments=None, timeout=None: ToolCallResult.success(
            name, {"files": []}
        )
    )
    return inv


@pytest.fixture
def upload_storage(tmp_path) -> LocalUploadStorage:
    return LocalUploadStorage(tmp_path / "uploads")


@pytest.fixture
def credential_provider(session_factory) -> CredentialProvider:
    return CredentialProvider(session_factory=session_factory)


@pytest.fixture
def client(
    db_session: Session,
    completion,
    supervisor,
    invoker,
    upload_storage,
    credential_provider,
) -> Generator[TestClient, None, None]:
    """TestClient with every service dependency overridden."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_completion_client] = lambda: completion
    app.dependency_overrides[get_supervisor] = lambda: supervisor
    app.dependency_overrides[get_invoker] = lambda: invoker
    app.dependency_overrides[get_upload_storage] = lambda: upload_storage
    app.dependency_overrides[get_credential_provider] = lambda: credential_provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session_token(user.id)}"}


@pytest.fixture
def other_auth_headers(other_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session_token(other_user.id)}"}
