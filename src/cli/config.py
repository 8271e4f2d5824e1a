"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag (or WORKCHAT_CONFIG_PATH for the server)
2. ./workchat.yaml (working directory)
3. ~/.workchat/config.yaml (user home)

Environment variables override YAML: WORKCHAT_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from src.services.completion_client import get_default_model

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
ENV_PREFIX = "WORKCHAT_"


def resolve_env_vars(value: str) -> str:
    """Replace ${VAR} references with environment values (missing -> "")."""
    return _ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "info"


class WorkerConfig(BaseModel):
    """Tool worker process settings."""

    python: str | None = None
    module: str = "src.worker"
    ready_sentinel: str = "Tool worker ready"
    terminate_grace_seconds: float = Field(default=5.0, gt=0)
    invoke_timeout_seconds: float = Field(default=30.0, gt=0)
    autostart: bool = True


class CompletionConfig(BaseModel):
    """Completion model settings."""

    model: str = Field(default_factory=get_default_model)
    max_tokens: int = Field(default=2000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    timeout_seconds: float = Field(default=120.0, gt=0)


class WorkChatConfig(BaseModel):
    """Top-level WorkChat configuration."""

    server: ServerConfig = ServerConfig()
    worker: WorkerConfig = WorkerConfig()
    completion: CompletionConfig = Field(default_factory=CompletionConfig)

    @field_validator("server", "worker", "completion", mode="before")
    @classmethod
    def _none_is_default(cls, value: Any) -> Any:
        # An empty YAML section ("worker:") parses to None.
        return {} if value is None else value


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "workchat.yaml",
        Path.cwd() / "workchat.yml",
        Path.home() / ".workchat" / "config.yaml",
        Path.home() / ".workchat" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _coerce(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply WORKCHAT_<SECTION>_<KEY> overrides for known sections only.

    Unrelated WORKCHAT_* variables (WORKCHAT_DB_PATH and friends) do not
    match a section and are ignored here.
    """
    sections = sorted(WorkChatConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        for section in sections:
            section_prefix = section + "_"
            if not suffix.startswith(section_prefix):
                continue
            field = suffix[len(section_prefix):]
            section_model = WorkChatConfig.model_fields[section].annotation
            if field and field in section_model.model_fields:
                section_data = data.get(section)
                if not isinstance(section_data, dict):
                    section_data = {}
                    data[section] = section_data
                section_data[field] = _coerce(value)
            break
    return data


def load_config(config_path: str | None = None) -> WorkChatConfig | None:
    """Load configuration from a YAML file.

    Args:
        config_path: Explicit path. If None, searches standard locations.

    Returns:
        Validated config, or None if no file was found.

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)
    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return WorkChatConfig(**data)


def resolve_config(config_path: str | None = None) -> WorkChatConfig:
    """Like :func:`load_config`, but falls back to defaults plus env overrides."""
    cfg = load_config(config_path)
    if cfg is not None:
        return cfg
    return WorkChatConfig(**_apply_env_overrides({}))
