"""Tests for AES-256-GCM token encryption with versioned envelope."""

import base64
import json
import logging
import os
import platform
import stat

import pytest

from src.services.credential_encryption import (
    KEY_FILENAME,
    CredentialDecryptionError,
    decrypt_credentials,
    encrypt_credentials,
    get_or_create_key,
)


@pytest.fixture
def temp_key_dir(tmp_path, monkeypatch):
    """Temporary key directory with env key sources cleared."""
    monkeypatch.delenv("WORKCHAT_CREDENTIAL_KEY", raising=False)
    monkeypatch.delenv("WORKCHAT_CREDENTIAL_KEY_FILE", raising=False)
    return str(tmp_path)


@pytest.fixture
def key():
    return os.urandom(32)


class TestKeyManagement:
    """Tests for encryption key lifecycle."""

    def test_get_or_create_key_creates_file(self, temp_key_dir):
        """First call creates key file and returns 32-byte key."""
        key = get_or_create_key(key_dir=temp_key_dir)
        assert len(key) == 32
        assert os.path.exists(os.path.join(temp_key_dir, KEY_FILENAME))

    def test_get_or_create_key_is_idempotent(self, temp_key_dir):
        assert get_or_create_key(key_dir=temp_key_dir) == get_or_create_key(key_dir=temp_key_dir)

    @pytest.mark.skipif(platform.system() == "Windows", reason="Unix permissions")
    def test_key_file_has_restricted_permissions(self, temp_key_dir):
        get_or_create_key(key_dir=temp_key_dir)
        mode = os.stat(os.path.join(temp_key_dir, KEY_FILENAME)).st_mode
        assert stat.S_IMODE(mode) == 0o600

    @pytest.mark.skipif(platform.system() == "Windows", reason="Unix permissions")
    def test_permissive_key_file_warns(self, temp_key_dir, caplog):
        key_path = os.path.join(temp_key_dir, KEY_FILENAME)
        with open(key_path, "wb") as f:
            f.write(os.urandom(32))
        os.chmod(key_path, 0o644)
        with caplog.at_level(logging.WARNING):
            get_or_create_key(key_dir=temp_key_dir)
        assert any("permissions" in msg and "600" in msg for msg in caplog.messages)

    def test_invalid_key_length_raises(self, temp_key_dir):
        with open(os.path.join(temp_key_dir, KEY_FILENAME), "wb") as f:
            f.write(b"too_short")
        with pytest.raises(ValueError, match="invalid length"):
            get_or_create_key(key_dir=temp_key_dir)

    def test_default_key_dir_is_data_dir(self, temp_key_dir, monkeypatch):
        monkeypatch.setenv("WORKCHAT_DATA_DIR", temp_key_dir)
        get_or_create_key()
        assert os.path.exists(os.path.join(temp_key_dir, KEY_FILENAME))

    def test_env_key_takes_precedence(self, temp_key_dir, monkeypatch):
        raw_key = os.urandom(32)
        monkeypatch.setenv("WORKCHAT_CREDENTIAL_KEY", base64.b64encode(raw_key).decode())
        assert get_or_create_key(key_dir=temp_key_dir) == raw_key
        assert not os.path.exists(os.path.join(temp_key_dir, KEY_FILENAME))

    def test_env_key_file_takes_precedence_over_data_dir(self, temp_key_dir, monkeypatch):
        custom_key = os.urandom(32)
        custom_path = os.path.join(temp_key_dir, "custom_key")
        with open(custom_path, "wb") as f:
            f.write(custom_key)
        monkeypatch.setenv("WORKCHAT_CREDENTIAL_KEY_FILE", custom_path)
        assert get_or_create_key(key_dir=temp_key_dir) == custom_key

    def test_invalid_env_key_length_raises(self, temp_key_dir, monkeypatch):
        monkeypatch.setenv("WORKCHAT_CREDENTIAL_KEY", base64.b64encode(b"short").decode())
        with pytest.raises(ValueError, match="invalid length"):
            get_or_create_key()

    def test_invalid_env_key_base64_raises(self, temp_key_dir, monkeypatch):
        monkeypatch.setenv("WORKCHAT_CREDENTIAL_KEY", "not base64!!")
        with pytest.raises(ValueError, match="invalid base64"):
            get_or_create_key()

    def test_missing_env_key_file_raises(self, temp_key_dir, monkeypatch):
        monkeypatch.setenv("WORKCHAT_CREDENTIAL_KEY_FILE", os.path.join(temp_key_dir, "nope"))
        with pytest.raises(ValueError, match="does not exist"):
            get_or_create_key()

    def test_env_key_file_symlink_rejected(self, temp_key_dir, monkeypatch):
        target = os.path.join(temp_key_dir, "real_key")
        with open(target, "wb") as f:
            f.write(os.urandom(32))
        link = os.path.join(temp_key_dir, "link_key")
        os.symlink(target, link)
        monkeypatch.setenv("WORKCHAT_CREDENTIAL_KEY_FILE", link)
        with pytest.raises(ValueError, match="symlink"):
            get_or_create_key()


class TestEncryptDecrypt:
    """Tests for envelope round-trips and failure modes."""

    def test_envelope_format(self, key):
        envelope = json.loads(encrypt_credentials({"access_token": "ya29"}, key))
        assert envelope["v"] == 1
        assert envelope["alg"] == "AES-256-GCM"
        assert len(base64.b64decode(envelope["nonce"])) == 12
        assert "ya29" not in envelope["ct"]

    def test_round_trip_with_aad(self, key):
        payload = {"access_token": "ya29", "refresh_token": "1//r"}
        encrypted = encrypt_credentials(payload, key, aad="user_tokens:u1")
        assert decrypt_credentials(encrypted, key, aad="user_tokens:u1") == payload

    def test_nonce_differs_per_encryption(self, key):
        a = json.loads(encrypt_credentials({"a": 1}, key))
        b = json.loads(encrypt_credentials({"a": 1}, key))
        assert a["nonce"] != b["nonce"]

    def test_wrong_aad_fails(self, key):
        encrypted = encrypt_credentials({"a": 1}, key, aad="user_tokens:u1")
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(encrypted, key, aad="user_tokens:u2")

    def test_wrong_key_fails(self, key):
        encrypted = encrypt_credentials({"a": 1}, key)
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(encrypted, os.urandom(32))

    def test_tampered_ciphertext_fails(self, key):
        envelope = json.loads(encrypt_credentials({"a": 1}, key))
        ct = bytearray(base64.b64decode(envelope["ct"]))
        ct[0] ^= 0xFF
        envelope["ct"] = base64.b64encode(bytes(ct)).decode()
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(json.dumps(envelope), key)

    @pytest.mark.parametrize("encrypted", [
        "not json",
        "[1, 2]",
        json.dumps({"v": 2, "alg": "AES-256-GCM", "nonce": "", "ct": ""}),
        json.dumps({"v": 1, "alg": "ROT13", "nonce": "", "ct": ""}),
        json.dumps({"v": 1, "alg": "AES-256-GCM"}),
        json.dumps({"v": 1, "alg": "AES-256-GCM", "nonce": "AAAA", "ct": "AAAA"}),
    ])
    def test_malformed_envelopes_fail(self, key, encrypted):
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(encrypted, key)

    def test_short_key_rejected(self):
        with pytest.raises(ValueError):
            encrypt_credentials({"a": 1}, b"short")
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials("{}", b"short")
