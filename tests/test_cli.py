"""Tests for the command line interface."""

from unittest.mock import patch

from click.testing import CliRunner

from cdnservices.auth.tokens import subject_from_payload, verify_signed_token
from cdnservices.cli import _hypercorn_config, cli


class TestSecretCommand:
    def test_prints_key(self):
        result = CliRunner().invoke(cli, ["secret", "--format", "hex", "--length", "8"])
        assert result.exit_code == 0
        assert len(result.output.strip()) == 16

    def test_writes_env_file(self, tmp_path):
        env_path = tmp_path / ".env"
        env_path.write_text("DEBUG=true\nSECRET_KEY=old")
        result = CliRunner().invoke(cli, ["secret", "--write", str(env_path)])
        assert result.exit_code == 0
        content = env_path.read_text()
        assert content.startswith("DEBUG=true\nSECRET_KEY=")
        assert "SECRET_KEY=old" not in content


class TestTokenCommand:
    def test_issues_verifiable_token(self):
        result = CliRunner().invoke(cli, ["token", "user-9", "--secret-key", "k", "--claim", "role=admin"])
        assert result.exit_code == 0
        payload = verify_signed_token(result.output.strip(), "k")
        assert subject_from_payload(payload) == "user-9"
        assert payload["role"] == "admin"

    def test_rejects_malformed_claim(self):
        result = CliRunner().invoke(cli, ["token", "u", "--secret-key", "k", "--claim", "nope"])
        assert result.exit_code != 0
        assert "key=value" in result.output


class TestServeCommand:
    def test_hypercorn_config(self):
        config = _hypercorn_config("0.0.0.0", 8000, 2, "warning", reload=False)
        assert config.bind == ["0.0.0.0:8000"]
        assert config.workers == 2
        assert config.application_path == "cdnservices.asgi:app"

    def test_multiple_workers_use_hypercorn_runner(self):
        with patch("hypercorn.run.run") as run:
            result = CliRunner().invoke(cli, ["serve", "--workers", "3"])
        assert result.exit_code == 0
        assert run.call_args.args[0].workers == 3
