"""File path resolution using platformdirs.

In dev mode (WORKCHAT_DEV_MODE set, or a source checkout with no override),
paths resolve relative to the project root. Otherwise paths use the
platform-appropriate per-user data directory:
  macOS: ~/Library/Application Support/workchat/
  Linux: ~/.local/share/workchat/
  Windows: %LOCALAPPDATA%/workchat/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "workchat"

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, uploads, key file).

    WORKCHAT_DATA_DIR overrides everything. In dev mode the project root
    is used so a checkout keeps its state next to the code.
    """
    override = os.environ.get("WORKCHAT_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    if os.environ.get("WORKCHAT_DEV_MODE", "").strip().lower() in {"1", "true", "yes"}:
        return PROJECT_ROOT
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_upload_dir() -> Path:
    """Return the root directory for uploaded chat attachments."""
    override = os.environ.get("WORKCHAT_UPLOAD_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return get_data_dir() / "uploads"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "workchat.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    for d in [get_data_dir(), get_upload_dir()]:
        d.mkdir(parents=True, exist_ok=True)
