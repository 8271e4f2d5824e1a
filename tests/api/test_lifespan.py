"""Tests for application start-up and shutdown."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI

from src.api.main import lifespan
from src.cli.config import WorkChatConfig, WorkerConfig
from src.errors.domain import WorkerSpawnError
from src.services.tool_worker_supervisor import ToolWorkerSupervisor


def _patched(config: WorkChatConfig, supervisor: MagicMock):
    def fake_build(app, cfg):
        app.state.supervisor = supervisor

    return (
        patch("src.api.main.resolve_config", return_value=config),
        patch("src.api.main.ensure_dirs_exist"),
        patch("src.api.main.init_db"),
        patch("src.api.main.close_db"),
        patch("src.api.main.build_services", side_effect=fake_build),
    )


def _supervisor() -> MagicMock:
    sup = MagicMock(spec=ToolWorkerSupervisor)
    sup.start = AsyncMock()
    sup.shutdown = AsyncMock()
    return sup


class TestLifespan:
    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self):
        supervisor = _supervisor()
        p_cfg, p_dirs, p_init, p_close, p_build = _patched(WorkChatConfig(), supervisor)
        with p_cfg, p_dirs, p_init as init_db, p_close as close_db, p_build:
            async with lifespan(FastAPI()):
                init_db.assert_called_once()
                supervisor.start.assert_awaited_once()
                close_db.assert_not_called()

            supervisor.shutdown.assert_awaited_once()
            close_db.assert_called_once()

    @pytest.mark.asyncio
    async def test_spawn_failure_is_not_fatal(self):
        supervisor = _supervisor()
        supervisor.start.side_effect = WorkerSpawnError("python -m src.worker", "not found")
        p_cfg, p_dirs, p_init, p_close, p_build = _patched(WorkChatConfig(), supervisor)
        with p_cfg, p_dirs, p_init, p_close as close_db, p_build:
            async with lifespan(FastAPI()):
                pass
            close_db.assert_called_once()

    @pytest.mark.asyncio
    async def test_autostart_disabled(self):
        supervisor = _supervisor()
        config = WorkChatConfig(worker=WorkerConfig(autostart=False))
        p_cfg, p_dirs, p_init, p_close, p_build = _patched(config, supervisor)
        with p_cfg, p_dirs, p_init, p_close, p_build:
            async with lifespan(FastAPI()):
                supervisor.start.assert_not_awaited()
