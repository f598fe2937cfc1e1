"""Shared CLI helpers used by ``cli.py`` and the ``cli_commands/`` modules.

Provides ``get_provider()`` plus the error/JSON output helpers so every
command reports failures the same way.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from civicwatch.config import CIVICWATCH_DIR_NAME, find_civicwatch_root, load_backend_config
from civicwatch.errors import CivicWatchError
from civicwatch.logging import setup_logging
from civicwatch.provider import Provider, open_provider


def get_provider() -> Provider:
    """Discover .civicwatch/ and return a provider for the configured backend."""
    try:
        civicwatch_dir = find_civicwatch_root()
    except FileNotFoundError:
        click.echo(f"No {CIVICWATCH_DIR_NAME}/ found. Run 'civicwatch init' first.", err=True)
        sys.exit(1)
    setup_logging(civicwatch_dir)
    return open_provider(load_backend_config(civicwatch_dir))


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def fail(exc: Exception, as_json: bool) -> NoReturn:
    """Report *exc* (JSON envelope or stderr) and exit with status 1."""
    code = exc.code if isinstance(exc, CivicWatchError) else "invalid_input"
    if as_json:
        click.echo(json_mod.dumps({"error": str(exc), "code": code}))
    else:
        click.echo(f"Error: {exc}", err=True)
    sys.exit(1)
