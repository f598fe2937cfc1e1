"""Fixtures for CLI interface tests."""

from __future__ import annotations

import json
import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from civicwatch.cli import cli


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a civicwatch project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init"])
    assert result.exit_code == 0, result.output
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def report(runner: CliRunner, description: str = "Pothole", *args: str) -> dict:
    """Run ``report --json`` and return the created issue."""
    result = runner.invoke(cli, ["report", description, "--address", "Main St", *args, "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def login_as_authority(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["authority", "login", "AUTH-2025"])
    assert result.exit_code == 0, result.output
