"""AES-256-GCM encryption for stored Google tokens.

Key source precedence:
    1. WORKCHAT_CREDENTIAL_KEY env var (base64-encoded 32-byte key)
    2. WORKCHAT_CREDENTIAL_KEY_FILE env var (path to raw key file)
    3. ``.workchat_key`` in the data directory (generated on first use)

Ciphertext format: versioned JSON envelope
``{"v": 1, "alg": "AES-256-GCM", "nonce": "<b64>", "ct": "<b64>"}``.
The AAD binds an envelope to its owning user so rows cannot be swapped.
"""

import base64
import binascii
import json
import logging
import os
import platform
import stat
from pathlib import Path

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

KEY_FILENAME = ".workchat_key"
_CURRENT_VERSION = 1
_ALGORITHM = "AES-256-GCM"
_KEY_LENGTH = 32
_NONCE_LENGTH = 12


class CredentialDecryptionError(Exception):
    """Raised when a token envelope cannot be decrypted for any reason."""


def _check_key_length(key: bytes, source: str) -> bytes:
    if len(key) != _KEY_LENGTH:
        raise ValueError(
            f"{source} has invalid length {len(key)} (expected {_KEY_LENGTH})"
        )
    return key


def _key_from_env(value: str) -> bytes:
    try:
        key = base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise ValueError(f"WORKCHAT_CREDENTIAL_KEY contains invalid base64: {e}") from e
    return _check_key_length(key, "WORKCHAT_CREDENTIAL_KEY")


def _key_from_file(path: Path) -> bytes:
    if not path.exists():
        raise ValueError(f"WORKCHAT_CREDENTIAL_KEY_FILE path does not exist: {path}")
    if path.is_symlink():
        raise ValueError(f"WORKCHAT_CREDENTIAL_KEY_FILE is a symlink: {path}")
    if not path.is_file():
        raise ValueError(f"WORKCHAT_CREDENTIAL_KEY_FILE is not a regular file: {path}")
    return _check_key_length(path.read_bytes(), f"Key file {path}")


def _load_or_generate(key_path: Path) -> bytes:
    if key_path.exists():
        key = _check_key_length(key_path.read_bytes(), f"Key file {key_path}")
        if platform.system() != "Windows":
            mode = stat.S_IMODE(key_path.stat().st_mode)
            if mode & (stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH):
                logger.warning(
                    "Key file %s has permissions %o; chmod 600 recommended",
                    key_path, mode,
                )
        return key

    key = os.urandom(_KEY_LENGTH)
    try:
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            os.write(fd, key)
        finally:
            os.close(fd)
    except FileExistsError:
        # Another process generated it between the exists() check and open().
        return _check_key_length(key_path.read_bytes(), f"Key file {key_path}")

    logger.info("Generated new token encryption key at %s", key_path)
    return key


def get_or_create_key(key_dir: str | Path | None = None) -> bytes:
    """Load or generate the 32-byte AES-256 key.

    Args:
        key_dir: Directory for the generated key file (source 3 only).
            Defaults to the application data directory.

    Returns:
        32-byte encryption key.

    Raises:
        ValueError: If a configured key is malformed or has the wrong length.
    """
    env_key = os.environ.get("WORKCHAT_CREDENTIAL_KEY", "").strip()
    if env_key:
        return _key_from_env(env_key)

    env_key_file = os.environ.get("WORKCHAT_CREDENTIAL_KEY_FILE", "").strip()
    if env_key_file:
        return _key_from_file(Path(env_key_file))

    if key_dir is None:
        from src.utils.paths import get_data_dir

        key_dir = get_data_dir()
    directory = Path(key_dir)
    directory.mkdir(parents=True, exist_ok=True)
    return _load_or_generate(directory / KEY_FILENAME)


def encrypt_credentials(credentials: dict, key: bytes, aad: str = "") -> str:
    """Encrypt a token dict into a versioned JSON envelope string.

    Args:
        credentials: JSON-serializable token dict.
        key: 32-byte AES-256 key.
        aad: Additional authenticated data (e.g. ``user:<id>``).

    Raises:
        ValueError: If key is not exactly 32 bytes.
    """
    _check_key_length(key, "Encryption key")
    nonce = os.urandom(_NONCE_LENGTH)
    plaintext = json.dumps(credentials, sort_keys=True).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad.encode("utf-8") if aad else None)
    return json.dumps({
        "v": _CURRENT_VERSION,
        "alg": _ALGORITHM,
        "nonce": base64.b64encode(nonce).decode("ascii"),
        "ct": base64.b64encode(ciphertext).decode("ascii"),
    })


def decrypt_credentials(encrypted: str, key: bytes, aad: str = "") -> dict:
    """Decrypt an envelope produced by :func:`encrypt_credentials`.

    Raises:
        CredentialDecryptionError: On any failure, including a wrong key,
            mismatched AAD, or a malformed envelope.
    """
    if len(key) != _KEY_LENGTH:
        raise CredentialDecryptionError(
            f"Decryption key must be exactly {_KEY_LENGTH} bytes (got {len(key)})"
        )

    try:
        envelope = json.loads(encrypted)
    except (json.JSONDecodeError, TypeError) as e:
        raise CredentialDecryptionError(f"Invalid envelope format: {e}") from e
    if not isinstance(envelope, dict):
        raise CredentialDecryptionError("Envelope is not a JSON object")

    if envelope.get("v") != _CURRENT_VERSION:
        raise CredentialDecryptionError(
            f"Unsupported envelope version {envelope.get('v')}"
        )
    if envelope.get("alg") != _ALGORITHM:
        raise CredentialDecryptionError(
            f"Unsupported algorithm '{envelope.get('alg')}'"
        )

    try:
        nonce = base64.b64decode(envelope["nonce"], validate=True)
        ciphertext = base64.b64decode(envelope["ct"], validate=True)
    except (KeyError, TypeError, binascii.Error) as e:
        raise CredentialDecryptionError(f"Malformed envelope fields: {e}") from e
    if len(nonce) != _NONCE_LENGTH:
        raise CredentialDecryptionError(f"Invalid nonce length {len(nonce)}")

    try:
        plaintext = AESGCM(key).decrypt(
            nonce, ciphertext, aad.encode("utf-8") if aad else None
        )
        result = json.loads(plaintext.decode("utf-8"))
    except Exception as e:
        raise CredentialDecryptionError(f"Decryption failed: {e}") from e
    if not isinstance(result, dict):
        raise CredentialDecryptionError(
            f"Decrypted payload is not a dict (got {type(result).__name__})"
        )
    return result
