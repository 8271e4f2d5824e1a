"""Tests for the workchat CLI commands."""

import yaml
from typer.testing import CliRunner

from src.api.middleware.auth import verify_session_token
from src.cli.main import app
from src.db.connection import get_db_context
from src.services.user_service import UserService

runner = CliRunner()


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "WorkChat" in result.output

    def test_config_validate_missing_file(self, tmp_path):
        result = runner.invoke(app, ["config", "validate", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_config_validate_ok(self, tmp_path):
        path = tmp_path / "workchat.yaml"
        path.write_text(yaml.safe_dump({"server": {"port": 8123}}))
        result = runner.invoke(app, ["config", "validate", "--config", str(path)])
        assert result.exit_code == 0
        assert "8123" in result.output

    def test_config_validate_bad_value(self, tmp_path):
        path = tmp_path / "workchat.yaml"
        path.write_text(yaml.safe_dump({"completion": {"temperature": 3}}))
        result = runner.invoke(app, ["config", "validate", "--config", str(path)])
        assert result.exit_code == 1
        assert "validation failed" in result.output

    def test_create_user_prints_valid_token(self):
        result = runner.invoke(app, ["create-user", "cli-user@example.com", "--name", "CLI"])
        assert result.exit_code == 0
        token = result.output.strip().splitlines()[-1]

        with get_db_context() as db:
            user = UserService(db).get_by_email("cli-user@example.com")
            assert user is not None
            assert verify_session_token(token) == user.id

    def test_create_user_rejects_bad_email(self):
        result = runner.invoke(app, ["create-user", "not-an-email"])
        assert result.exit_code == 1
