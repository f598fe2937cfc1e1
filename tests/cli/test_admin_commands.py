"""CLI tests for admin commands (init, authority login/logout, backend selection)."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from civicwatch.cli import cli
from civicwatch.config import ENV_DATA_MODE, read_config


class TestInit:
    def test_init_creates_layout(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original = os.getcwd()
        os.chdir(str(tmp_path))
        try:
            result = cli_runner.invoke(cli, ["init"])
        finally:
            os.chdir(original)
        assert result.exit_code == 0, result.output
        civicwatch_dir = tmp_path / ".civicwatch"
        assert (civicwatch_dir / "civicwatch.db").is_file()
        assert (civicwatch_dir / "images").is_dir()
        config = read_config(civicwatch_dir)
        assert config["mode"] == "local"
        assert config["user_id"].startswith("user_")
        assert config["role"] == "citizen"
        assert config["authority_code"] == "AUTH-2025"

    def test_init_twice_keeps_user(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        before = read_config(root / ".civicwatch")["user_id"]
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output
        assert read_config(root / ".civicwatch")["user_id"] == before

    def test_init_switches_mode(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        result = runner.invoke(cli, ["init", "--mode", "REMOTE"])
        assert result.exit_code == 0
        assert read_config(root / ".civicwatch")["mode"] == "remote"

    def test_invalid_mode(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["init", "--mode", "cloud"])
        assert result.exit_code == 2


class TestBackendSelection:
    def test_outside_project(self, tmp_path: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(cli, ["list"])
        assert result.exit_code == 1
        assert "No .civicwatch/ found" in result.output

    def test_remote_without_endpoint_is_configuration_error(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["init", "--mode", "remote"])
        result = runner.invoke(cli, ["list", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["code"] == "configuration_error"
        assert "http" in data["error"]

    def test_environment_mode_override(
        self, cli_in_project: tuple[CliRunner, Path], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        runner, root = cli_in_project
        monkeypatch.setenv(ENV_DATA_MODE, "carrier-pigeon")
        for command in (["list", "--json"], ["stats", "--json"], ["whoami", "--json"]):
            result = runner.invoke(cli, command)
            assert result.exit_code == 1
            assert json.loads(result.output)["code"] == "configuration_error"

        log_lines = (root / ".civicwatch" / "civicwatch.log").read_text().splitlines()
        assert any(json.loads(line)["msg"] == "backend_unconfigured" for line in log_lines)


class TestAuthority:
    def test_login_and_logout(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        result = runner.invoke(cli, ["authority", "login", "AUTH-2025", "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["role"] == "authority"
        whoami = json.loads(runner.invoke(cli, ["whoami", "--json"]).output)
        assert whoami["identity"]["role"] == "authority"

        result = runner.invoke(cli, ["authority", "logout"])
        assert result.exit_code == 0
        assert read_config(root / ".civicwatch")["role"] == "citizen"

    def test_wrong_code(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        result = runner.invoke(cli, ["authority", "login", "guess"])
        assert result.exit_code == 1
        assert "Invalid authority code" in result.output
        assert read_config(root / ".civicwatch")["role"] == "citizen"

    def test_remote_mode_has_no_local_login(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["init", "--mode", "remote"])
        result = runner.invoke(cli, ["authority", "login", "AUTH-2025", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "unsupported"
