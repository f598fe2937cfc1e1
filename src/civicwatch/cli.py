"""CLI for the civicwatch issue feed.

Convention-based: discovers .civicwatch/ by walking up from cwd.

Usage:
    civicwatch init                                   # Initialize .civicwatch/ in cwd
    civicwatch report "Pothole" -a "Main St" -t road  # Report an issue
    civicwatch list --sort=newest --tag=road          # Browse the feed
    civicwatch list --mine --status=unsolved          # My open reports
    civicwatch upvote <id>                            # Upvote once
    civicwatch authority login <code>                 # Become an authority
    civicwatch solve <id>                             # Mark solved
    civicwatch unsolve <id>                           # Reopen
    civicwatch delete <id>                            # Remove (local store only)
    civicwatch tags                                   # Tags in use
    civicwatch stats                                  # Solved/unsolved counts
    civicwatch export-csv -o issues.csv               # CSV export
    civicwatch whoami                                 # Active identity and backend
"""

from __future__ import annotations

import click

from civicwatch import __version__
from civicwatch.cli_commands import admin, issues, meta


@click.group()
@click.version_option(version=__version__, prog_name="civicwatch")
def cli() -> None:
    """CivicWatch: report, upvote and resolve local issues."""


cli.add_command(admin.init)
cli.add_command(admin.authority)
cli.add_command(issues.list_issues)
cli.add_command(issues.report)
cli.add_command(issues.upvote)
cli.add_command(issues.solve)
cli.add_command(issues.unsolve)
cli.add_command(issues.delete)
cli.add_command(meta.whoami)
cli.add_command(meta.tags)
cli.add_command(meta.stats)
cli.add_command(meta.export_csv_cmd)


if __name__ == "__main__":
    cli()
