"""Feed query engine: turn a raw issue collection into the list a user sees.

Pure functions over ``Issue`` lists.  Filters run in a fixed order (text,
status, tag, ownership) and the sort is stable, so issues that tie on every
sort key keep their input order.  Inputs are never mutated.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from civicwatch.models import Issue

VALID_STATUSES: frozenset[str] = frozenset({"all", "solved", "unsolved"})
VALID_SORTS: frozenset[str] = frozenset({"trending", "newest", "most_upvoted"})

# Stand-in for a missing created_at: sorts before every real timestamp
_OLDEST = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True)
class FeedQuery:
    text: str = ""
    status: str = "all"
    tag: str = ""
    sort_by: str = "trending"
    my_only: bool = False
    viewer_id: str | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_STATUSES:
            msg = f"Invalid status '{self.status}'. Valid: {', '.join(sorted(VALID_STATUSES))}"
            raise ValueError(msg)
        if self.sort_by not in VALID_SORTS:
            msg = f"Invalid sort '{self.sort_by}'. Valid: {', '.join(sorted(VALID_SORTS))}"
            raise ValueError(msg)


@dataclass(frozen=True)
class FeedStats:
    total: int
    solved: int
    unsolved: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "solved": self.solved, "unsolved": self.unsolved}


def _created_key(issue: Issue) -> datetime:
    return issue.created_at if issue.created_at is not None else _OLDEST


def _matches_text(issue: Issue, needle: str) -> bool:
    return (
        needle in issue.description.casefold()
        or needle in issue.address.casefold()
        or any(needle in tag.casefold() for tag in issue.tags)
    )


def query_feed(issues: Iterable[Issue], query: FeedQuery) -> list[Issue]:
    """Filter and sort *issues* for display. Returns a new list."""
    result = list(issues)

    needle = query.text.strip().casefold()
    if needle:
        result = [i for i in result if _matches_text(i, needle)]

    if query.status == "solved":
        result = [i for i in result if i.solved]
    elif query.status == "unsolved":
        result = [i for i in result if not i.solved]

    tag = query.tag.strip().casefold()
    if tag:
        result = [i for i in result if any(t.casefold() == tag for t in i.tags)]

    if query.my_only and query.viewer_id:
        result = [i for i in result if i.created_by == query.viewer_id]

    if query.sort_by == "newest":
        result.sort(key=_created_key, reverse=True)
    elif query.sort_by == "most_upvoted":
        result.sort(key=lambda i: i.upvote_count, reverse=True)
    else:
        # reverse=True keeps ties in input order, so one tuple key covers both rules
        result.sort(key=lambda i: (i.upvote_count, _created_key(i)), reverse=True)
    return result


def collect_tags(issues: Iterable[Issue]) -> list[str]:
    """Sorted distinct lowercase tags across *issues*, for the tag picker."""
    return sorted({tag.lower() for issue in issues for tag in issue.tags})


def feed_stats(issues: Sequence[Issue]) -> FeedStats:
    solved = sum(1 for i in issues if i.solved)
    return FeedStats(total=len(issues), solved=solved, unsolved=len(issues) - solved)
