"""CLI commands for project setup: init, authority login/logout."""

from __future__ import annotations

import asyncio
import hmac
import sys
from pathlib import Path

import click

from civicwatch.cli_common import echo_json, fail
from civicwatch.config import (
    CIVICWATCH_DIR_NAME,
    DB_FILENAME,
    DEFAULT_AUTHORITY_CODE,
    VALID_MODES,
    default_config,
    find_civicwatch_root,
    generate_user_id,
    load_backend_config,
    read_config,
    write_config,
)
from civicwatch.errors import ConfigurationError, UnsupportedOperationError
from civicwatch.local_store import IMAGES_DIR_NAME, LocalStore


async def _init_store(civicwatch_dir: Path) -> None:
    async with LocalStore(civicwatch_dir / DB_FILENAME) as store:
        store.initialize()


@click.command()
@click.option(
    "--mode",
    type=click.Choice(sorted(VALID_MODES), case_sensitive=False),
    default=None,
    help="Data backend (default: local)",
)
def init(mode: str | None) -> None:
    """Initialize .civicwatch/ in the current directory."""
    cwd = Path.cwd()
    civicwatch_dir = cwd / CIVICWATCH_DIR_NAME

    if civicwatch_dir.exists():
        click.echo(f"{CIVICWATCH_DIR_NAME}/ already exists in {cwd}")
        config = read_config(civicwatch_dir)
        if not config.get("user_id"):
            config["user_id"] = generate_user_id()
        if mode is not None:
            config["mode"] = mode.lower()
            click.echo(f"  Mode: {config['mode']}")
        write_config(civicwatch_dir, config)
    else:
        civicwatch_dir.mkdir()
        config = default_config()
        config["mode"] = (mode or "local").lower()
        config["user_id"] = generate_user_id()
        config["authority_code"] = DEFAULT_AUTHORITY_CODE
        write_config(civicwatch_dir, config)
        click.echo(f"Initialized {CIVICWATCH_DIR_NAME}/ in {cwd}")
        click.echo(f"  Mode: {config['mode']}")
        click.echo(f"  User: {config['user_id']}")

    (civicwatch_dir / IMAGES_DIR_NAME).mkdir(exist_ok=True)
    try:
        asyncio.run(_init_store(civicwatch_dir))
    except ConfigurationError as e:
        fail(e, as_json=False)
    click.echo(f"  Database: {civicwatch_dir / DB_FILENAME}")


def _civicwatch_dir() -> Path:
    try:
        return find_civicwatch_root()
    except FileNotFoundError:
        click.echo(f"No {CIVICWATCH_DIR_NAME}/ found. Run 'civicwatch init' first.", err=True)
        sys.exit(1)


@click.group()
def authority() -> None:
    """Switch the local identity between citizen and authority."""


@authority.command()
@click.argument("code")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def login(code: str, as_json: bool) -> None:
    """Become an authority by presenting the configured access code."""
    civicwatch_dir = _civicwatch_dir()
    if load_backend_config(civicwatch_dir).mode == "remote":
        fail(UnsupportedOperationError("authority login", "remote"), as_json)

    config = read_config(civicwatch_dir)
    expected = config.get("authority_code") or ""
    if not expected or not hmac.compare_digest(code.strip().encode(), expected.encode()):
        fail(ValueError("Invalid authority code"), as_json)

    if not config.get("user_id"):
        config["user_id"] = generate_user_id()
    config["role"] = "authority"
    write_config(civicwatch_dir, config)
    if as_json:
        echo_json({"user_id": config["user_id"], "role": "authority"})
    else:
        click.echo(f"{config['user_id']} is now an authority")


@authority.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def logout(as_json: bool) -> None:
    """Drop back to the citizen role."""
    civicwatch_dir = _civicwatch_dir()
    config = read_config(civicwatch_dir)
    config["role"] = "citizen"
    write_config(civicwatch_dir, config)
    if as_json:
        echo_json({"user_id": config.get("user_id", ""), "role": "citizen"})
    else:
        click.echo("Authority mode off")
