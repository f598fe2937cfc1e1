"""CLI commands for feed metadata: whoami, tags, stats, export-csv."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from civicwatch.cli_common import echo_json, fail, get_provider
from civicwatch.controllers import IssueFeed
from civicwatch.errors import CivicWatchError
from civicwatch.export import default_export_filename, export_csv
from civicwatch.models import Identity
from civicwatch.provider import Provider


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def whoami(as_json: bool) -> None:
    """Show the active identity and backend."""
    provider = get_provider()

    async def _run() -> Identity | None:
        async with provider:
            return await provider.get_current_identity()

    try:
        identity = asyncio.run(_run())
    except CivicWatchError as e:
        fail(e, as_json)

    if as_json:
        echo_json({"backend": provider.backend_name, "identity": identity.to_dict() if identity else None})
        return
    click.echo(f"Backend:  {provider.backend_name}")
    if identity is None:
        click.echo("Identity: (not signed in)")
        return
    click.echo(f"Identity: {identity.id}")
    if identity.username:
        click.echo(f"Username: {identity.username}")
    if identity.email:
        click.echo(f"Email:    {identity.email}")
    click.echo(f"Role:     {identity.role}")


async def _load_feed(provider: Provider) -> IssueFeed:
    async with provider:
        feed = IssueFeed(provider)
        await feed.refresh()
    return feed


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tags(as_json: bool) -> None:
    """List every tag in use."""
    try:
        feed = asyncio.run(_load_feed(get_provider()))
    except CivicWatchError as e:
        fail(e, as_json)

    names = feed.tags()
    if as_json:
        echo_json(names)
        return
    for name in names:
        click.echo(name)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(as_json: bool) -> None:
    """Show total, solved and unsolved counts."""
    try:
        feed = asyncio.run(_load_feed(get_provider()))
    except CivicWatchError as e:
        fail(e, as_json)

    s = feed.stats()
    if as_json:
        echo_json(s.to_dict())
        return
    click.echo(f"Total:    {s.total}")
    click.echo(f"Solved:   {s.solved}")
    click.echo(f"Unsolved: {s.unsolved}")


@click.command("export-csv")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Output file path")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def export_csv_cmd(output: str | None, as_json: bool) -> None:
    """Export every issue to a CSV file."""
    try:
        feed = asyncio.run(_load_feed(get_provider()))
    except CivicWatchError as e:
        fail(e, as_json)

    out_path = Path(output) if output else Path.cwd() / default_export_filename()
    with out_path.open("w", newline="", encoding="utf-8") as f:
        count = export_csv(feed.issues, f)

    if as_json:
        echo_json({"path": str(out_path), "records": count})
    else:
        click.echo(f"Exported {count} issues to {out_path}")
