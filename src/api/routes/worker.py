"""FastAPI routes for the tool worker and the user's Google credentials.

Endpoints:
    GET  /mcp/status   - Worker readiness (public)
    POST /mcp/restart  - Restart the worker with the caller's tokens
    PUT  /credentials  - Store the caller's tokens, then restart the worker
    GET  /health       - Service health and worker readiness (public)
"""

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import APIRouter, Depends

from src.api.dependencies import get_credential_provider, get_supervisor
from src.api.middleware.auth import get_current_user
from src.api.schemas import (
    CredentialsRequest,
    CredentialsResponse,
    RestartResponse,
    WorkerStatusResponse,
)
from src.db.models import User
from src.services.credential_provider import CredentialProvider, TokenBundle
from src.services.tool_worker_supervisor import ToolWorkerSupervisor, WorkerStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["worker"])


def _public_status(status: WorkerStatus) -> WorkerStatusResponse:
    return WorkerStatusResponse(ready=status.ready, running=status.running, pid=status.pid)


@router.get("/mcp/status", response_model=WorkerStatusResponse)
def worker_status(
    supervisor: ToolWorkerSupervisor = Depends(get_supervisor),
) -> WorkerStatusResponse:
    return _public_status(supervisor.status())


@router.post("/mcp/restart", response_model=RestartResponse)
async def restart_worker(
    user: User = Depends(get_current_user),
    supervisor: ToolWorkerSupervisor = Depends(get_supervisor),
) -> RestartResponse:
    """Restart the worker with the caller's credentials.

    Returns as soon as the new process is spawned; poll ``/mcp/status``
    for readiness. WorkerSpawnError maps to a 500.
    """
    logger.info("Worker restart requested by user %s", user.id)
    status = await supervisor.restart(user.id)
    return RestartResponse(ok=True, status=_public_status(status))


@router.put("/credentials", response_model=CredentialsResponse)
async def put_credentials(
    body: CredentialsRequest,
    user: User = Depends(get_current_user),
    provider: CredentialProvider = Depends(get_credential_provider),
    supervisor: ToolWorkerSupervisor = Depends(get_supervisor),
) -> CredentialsResponse:
    """Store the caller's Google tokens and restart the worker with them."""
    bundle = TokenBundle(
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        id_token=body.id_token,
        expires_at=str(body.expires_at) if body.expires_at is not None else None,
    )
    provider.store_tokens(user.id, bundle)
    status = await supervisor.restart(user.id)
    return CredentialsResponse(stored=True, worker=_public_status(status))


@router.get("/health")
def health_check(
    supervisor: ToolWorkerSupervisor = Depends(get_supervisor),
) -> dict:
    try:
        version = _pkg_version("workchat")
    except PackageNotFoundError:
        version = "unknown"
    status = supervisor.status()
    return {
        "status": "healthy",
        "version": version,
        "worker_ready": status.ready,
        "worker_running": status.running,
    }
