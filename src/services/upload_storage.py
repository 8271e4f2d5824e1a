"""Storage backends for chat attachments.

Provides a pluggable storage interface; the local backend writes under
the upload directory, one sub-directory per user.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path
from typing import Protocol

from src.errors.domain import AttachmentProcessingError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class UploadStorage(Protocol):
    """Storage contract used by the chat orchestrator."""

    def save(self, user_id: str, original_name: str, data: bytes) -> tuple[str, str]:
        """Persist an upload and return ``(stored_filename, storage_path)``."""

    def read(self, storage_path: str) -> bytes:
        """Return the bytes of a stored upload."""

    def delete(self, storage_path: str) -> bool:
        """Remove a stored upload. Returns True when something was deleted."""


def build_stored_filename(original_name: str) -> str:
    """Build a unique, filesystem-safe name that keeps the original suffix."""
    base = Path(original_name or "upload").name
    safe = _UNSAFE_CHARS.sub("_", base).strip("._") or "upload"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe[-120:]}"


class LocalUploadStorage:
    """Filesystem-backed upload storage."""

    def __init__(self, base_dir: str | Path, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
        self.base_dir = Path(base_dir)
        self.max_bytes = max_bytes

    def save(self, user_id: str, original_name: str, data: bytes) -> tuple[str, str]:
        if len(data) > self.max_bytes:
            raise AttachmentProcessingError(
                original_name,
                f"File exceeds the {self.max_bytes // (1024 * 1024)} MB upload limit",
            )
        user_dir = self.base_dir / _UNSAFE_CHARS.sub("_", user_id)
        user_dir.mkdir(parents=True, exist_ok=True)
        filename = build_stored_filename(original_name)
        path = user_dir / filename
        path.write_bytes(data)
        logger.debug("Stored upload %s (%d bytes) at %s", original_name, len(data), path)
        return filename, str(path)

    def read(self, storage_path: str) -> bytes:
        return Path(storage_path).read_bytes()

    def delete(self, storage_path: str) -> bool:
        path = Path(storage_path).resolve()
        if not path.is_relative_to(self.base_dir.resolve()):
            logger.warning("Refusing to delete %s outside %s", path, self.base_dir)
            return False
        if not path.is_file():
            return False
        path.unlink()
        return True
