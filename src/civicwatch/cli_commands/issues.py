"""CLI commands for the issue feed: list, report, upvote, solve, unsolve, delete."""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path

import click

from civicwatch.cli_common import echo_json, fail, get_provider
from civicwatch.controllers import IssueFeed, StatusController, SubmissionController, VoteController
from civicwatch.errors import CivicWatchError
from civicwatch.feed import VALID_SORTS, VALID_STATUSES, FeedQuery
from civicwatch.models import CreatedIssue, ImagePayload, Issue, VoteResult, parse_tag_input


def _format_issue(issue: Issue) -> str:
    status = "solved" if issue.solved else "open"
    line = f"{issue.id} [{status:<6}] +{issue.upvote_count:<3} {issue.description}"
    if issue.tags:
        line += f"  #{' #'.join(issue.tags)}"
    return line


@click.command("list")
@click.option("--search", "-s", default="", help="Match description, address or tag text")
@click.option("--status", type=click.Choice(sorted(VALID_STATUSES)), default="all", help="Filter by status")
@click.option("--tag", "-t", default="", help="Only issues carrying this tag")
@click.option("--sort", "sort_by", type=click.Choice(sorted(VALID_SORTS)), default="trending", help="Sort order")
@click.option("--mine", is_flag=True, help="Only issues I reported")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_issues(search: str, status: str, tag: str, sort_by: str, mine: bool, as_json: bool) -> None:
    """List issues as the feed shows them."""
    provider = get_provider()

    async def _run() -> list[Issue]:
        async with provider:
            feed = IssueFeed(provider)
            await feed.refresh()
            viewer = await provider.get_current_identity() if mine else None
            query = FeedQuery(
                text=search,
                status=status,
                tag=tag,
                sort_by=sort_by,
                my_only=mine,
                viewer_id=viewer.id if viewer is not None else None,
            )
            return feed.view(query)

    try:
        issues = asyncio.run(_run())
    except CivicWatchError as e:
        fail(e, as_json)

    if as_json:
        echo_json([i.to_dict() for i in issues])
        return

    for issue in issues:
        click.echo(_format_issue(issue))
    click.echo(f"\n{len(issues)} issues")


def _read_image(path: str) -> ImagePayload:
    image_path = Path(path)
    content_type, _ = mimetypes.guess_type(image_path.name)
    return ImagePayload(
        filename=image_path.name,
        content=image_path.read_bytes(),
        content_type=content_type or "application/octet-stream",
    )


@click.command()
@click.argument("description")
@click.option("--address", "-a", required=True, help="Where the issue is")
@click.option("--tag", "-t", multiple=True, help="Tag (repeatable)")
@click.option("--tags", "tags_text", default="", help='Free-text tags, e.g. "road, lights"')
@click.option("--image", type=click.Path(exists=True, dir_okay=False), default=None, help="Photo of the issue")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def report(
    description: str,
    address: str,
    tag: tuple[str, ...],
    tags_text: str,
    image: str | None,
    as_json: bool,
) -> None:
    """Report a new issue."""
    tags = parse_tag_input(tags_text, existing=tag)
    payload = _read_image(image) if image else None
    provider = get_provider()

    async def _run() -> CreatedIssue:
        async with provider:
            controller = SubmissionController(provider)
            return await controller.submit(description, address, tags=tags, image=payload)

    try:
        result = asyncio.run(_run())
    except (CivicWatchError, ValueError) as e:
        fail(e, as_json)

    if as_json:
        data = dict(result.issue.to_dict())
        data["created"] = result.created
        data["warnings"] = [str(w) for w in result.warnings]
        echo_json(data)
        return

    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(f"Created {result.issue.id}: {result.issue.description}")


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def upvote(issue_id: str, as_json: bool) -> None:
    """Upvote an issue (once per person)."""
    provider = get_provider()

    async def _run() -> VoteResult:
        async with provider:
            return await VoteController(provider).upvote(issue_id)

    try:
        result = asyncio.run(_run())
    except CivicWatchError as e:
        fail(e, as_json)

    if as_json:
        echo_json({"id": issue_id, "ok": result.ok, "counted": result.counted})
    elif result.counted:
        click.echo(f"Upvoted {issue_id}")
    else:
        click.echo(f"Already upvoted {issue_id}")


def _change_status(issue_id: str, solved: bool, as_json: bool) -> None:
    provider = get_provider()

    async def _run() -> Issue:
        async with provider:
            return await StatusController(provider).set_solved(issue_id, solved)

    try:
        issue = asyncio.run(_run())
    except CivicWatchError as e:
        fail(e, as_json)

    if as_json:
        echo_json(issue.to_dict())
    else:
        click.echo(f"Marked {issue.id} {'solved' if issue.solved else 'unsolved'}")


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def solve(issue_id: str, as_json: bool) -> None:
    """Mark an issue solved (authority only)."""
    _change_status(issue_id, True, as_json)


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def unsolve(issue_id: str, as_json: bool) -> None:
    """Mark a solved issue as unsolved again (authority only)."""
    _change_status(issue_id, False, as_json)


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(issue_id: str, as_json: bool) -> None:
    """Delete an issue (authority only, local store only)."""
    provider = get_provider()

    async def _run() -> None:
        async with provider:
            await provider.delete_issue(issue_id)

    try:
        asyncio.run(_run())
    except CivicWatchError as e:
        fail(e, as_json)

    if as_json:
        echo_json({"id": issue_id, "status": "deleted"})
    else:
        click.echo(f"Deleted {issue_id}")
