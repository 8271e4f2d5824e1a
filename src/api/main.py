"""FastAPI application for the WorkChat API.

Provides the main application instance with routers, middleware, and
exception handlers configured. The lifespan builds the process-wide
services (tool worker supervisor, invoker, completion client, credential
provider, upload storage) and starts the tool worker.
"""

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.auth import validate_session_secret
from src.api.routes import chat, feedback, tools, worker
from src.cli.config import WorkChatConfig, resolve_config
from src.db.connection import close_db, init_db
from src.errors.domain import (
    CompletionClientError,
    DomainError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    WorkerSpawnError,
)
from src.services.completion_client import CompletionClient
from src.services.credential_provider import CredentialProvider
from src.services.tool_invoker import ToolInvoker
from src.services.tool_worker_supervisor import (
    ToolWorkerSupervisor,
    default_worker_command,
)
from src.services.upload_storage import LocalUploadStorage
from src.utils.paths import ensure_dirs_exist, get_upload_dir

logger = logging.getLogger(__name__)


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def build_services(app: FastAPI, config: WorkChatConfig) -> None:
    """Attach the process-wide services to ``app.state``."""
    credential_provider = CredentialProvider()
    supervisor = ToolWorkerSupervisor(
        credential_provider=credential_provider,
        command=default_worker_command(config.worker.python, config.worker.module),
        ready_sentinel=config.worker.ready_sentinel,
        terminate_grace_seconds=config.worker.terminate_grace_seconds,
    )
    app.state.config = config
    app.state.credential_provider = credential_provider
    app.state.supervisor = supervisor
    app.state.invoker = ToolInvoker(
        supervisor, default_timeout=config.worker.invoke_timeout_seconds,
    )
    app.state.completion_client = CompletionClient(
        default_model=config.completion.model,
        max_tokens=config.completion.max_tokens,
        temperature=config.completion.temperature,
        timeout_seconds=config.completion.timeout_seconds,
    )
    app.state.upload_storage = LocalUploadStorage(get_upload_dir())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: config, database, services, worker start and stop."""
    # --- Startup ---
    validate_session_secret()

    config = resolve_config(os.environ.get("WORKCHAT_CONFIG_PATH"))
    logging.getLogger("src").setLevel(config.server.log_level.upper())

    ensure_dirs_exist()
    init_db()
    build_services(app, config)

    if config.worker.autostart:
        # Tools stay unavailable until a later restart; chat still works.
        try:
            await app.state.supervisor.start()
        except WorkerSpawnError as e:
            logger.error("Tool worker failed to start: %s", e)

    yield

    # --- Shutdown ---
    await app.state.supervisor.shutdown()
    close_db()


app = FastAPI(
    title="WorkChat API",
    description="Tool-augmented chat over Google Workspace",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (InvalidInputError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
]


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to HTTP responses.

    Client errors carry their message. Worker and completion failures are
    logged and answered with a generic body.
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"error": str(exc)})

    if isinstance(exc, CompletionClientError):
        logger.error("Chat turn failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": "Failed to process chat message"})
    if isinstance(exc, WorkerSpawnError):
        logger.error("Tool worker spawn failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": "Failed to start tool worker"})

    logger.exception("Unhandled domain error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and answer with a generic body."""
    logger.exception("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(chat.router, prefix="/api/v1")
app.include_router(worker.router, prefix="/api/v1")
app.include_router(tools.router, prefix="/api/v1")
app.include_router(feedback.router, prefix="/api/v1")
