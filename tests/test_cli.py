"""Tests for the wx command line."""

from typer.testing import CliRunner

from watsonx_chat import __version__
from watsonx_chat.cli.app import app

runner = CliRunner()


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_config_validate_reports_problems(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.delenv("WATSONX_API_KEY", raising=False)
        monkeypatch.delenv("WATSONX_PROJECT_ID", raising=False)
        monkeypatch.delenv("WATSONX_SPACE_ID", raising=False)
        result = runner.invoke(app, ["config", "validate"])
        assert result.exit_code == 1
        assert "project_id" in result.stdout

    def test_config_validate_ok(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "watsonx.yaml").write_text("connection:\n  project_id: p1\n")
        monkeypatch.setenv("WATSONX_API_KEY", "secret")
        result = runner.invoke(app, ["config", "validate"])
        assert result.exit_code == 0
        assert "Config is valid" in result.stdout

    def test_chat_without_api_key_fails_cleanly(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.delenv("WATSONX_API_KEY", raising=False)
        monkeypatch.setenv("WATSONX_PROJECT_ID", "p1")
        result = runner.invoke(app, ["chat", "hello"])
        assert result.exit_code == 1
        assert "AuthenticationError" in result.stdout
