"""Controllers that drive mutations through the provider and refresh the feed.

Every mutation is followed by a full re-read of the issue list; nothing is
patched into the cached snapshot optimistically.  The submission controller
owns the idempotency key for one logical submission: it is minted on entry
to ``SUBMITTING`` and discarded when the submission finishes either way.
Nothing is retried automatically.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from civicwatch.errors import SubmissionInProgressError
from civicwatch.feed import FeedQuery, FeedStats, collect_tags, feed_stats, query_feed
from civicwatch.models import build_draft

if TYPE_CHECKING:
    from civicwatch.models import CreatedIssue, ImagePayload, Issue, VoteResult
    from civicwatch.provider import Provider

logger = logging.getLogger(__name__)


def _new_nonce() -> str:
    return uuid.uuid4().hex


class IssueFeed:
    """The last full snapshot read from the provider."""

    def __init__(self, provider: Provider) -> None:
        self._provider = provider
        self._issues: list[Issue] = []

    @property
    def issues(self) -> list[Issue]:
        return list(self._issues)

    async def refresh(self) -> list[Issue]:
        self._issues = await self._provider.list_issues()
        return self.issues

    def view(self, query: FeedQuery | None = None) -> list[Issue]:
        return query_feed(self._issues, query or FeedQuery())

    def tags(self) -> list[str]:
        return collect_tags(self._issues)

    def stats(self) -> FeedStats:
        return feed_stats(self._issues)


class SubmissionState(enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    FAILED = "failed"


class SubmissionController:
    """Guards one form's submissions so a double-click creates one issue.

    The in-flight check and the transition to ``SUBMITTING`` happen before
    the first ``await``, so two tasks racing on the same controller cannot
    both reach the backend.
    """

    def __init__(
        self,
        provider: Provider,
        feed: IssueFeed | None = None,
        *,
        nonce_factory: Callable[[], str] = _new_nonce,
    ) -> None:
        self._provider = provider
        self._feed = feed
        self._nonce_factory = nonce_factory
        self.state = SubmissionState.IDLE
        self.current_nonce: str | None = None
        self.last_error: BaseException | None = None

    async def submit(
        self,
        description: str,
        address: str,
        *,
        tags: Iterable[str] = (),
        image: ImagePayload | None = None,
    ) -> CreatedIssue:
        """Validate, create, and refresh the feed.

        Raises SubmissionInProgressError if a submit is already running,
        ValueError for invalid input (state unchanged), or whatever the
        backend raised (state becomes ``FAILED``).
        """
        if self.state is SubmissionState.SUBMITTING:
            raise SubmissionInProgressError()

        nonce = self._nonce_factory()
        draft = build_draft(description, address, client_nonce=nonce, tags=tags, image=image)

        self.state = SubmissionState.SUBMITTING
        self.current_nonce = nonce
        try:
            result = await self._provider.create_issue(draft)
        except Exception as exc:
            self.state = SubmissionState.FAILED
            self.last_error = exc
            logger.warning("Submission %s failed: %s", nonce, exc)
            raise
        finally:
            self.current_nonce = None

        self.state = SubmissionState.IDLE
        self.last_error = None
        for warning in result.warnings:
            logger.warning("Issue %s created without image: %s", result.issue.id, warning)
        if self._feed is not None:
            await self._feed.refresh()
        return result


class VoteController:
    """Stateless upvote action: no optimistic increment, refresh afterwards."""

    def __init__(self, provider: Provider, feed: IssueFeed | None = None) -> None:
        self._provider = provider
        self._feed = feed

    async def upvote(self, issue_id: str) -> VoteResult:
        result = await self._provider.upvote_issue(issue_id)
        if not result.counted:
            logger.debug("Vote on %s was already recorded", issue_id)
        if self._feed is not None:
            await self._feed.refresh()
        return result


class StatusController:
    def __init__(self, provider: Provider, feed: IssueFeed | None = None) -> None:
        self._provider = provider
        self._feed = feed

    async def set_solved(self, issue_id: str, solved: bool) -> Issue:
        issue = await self._provider.set_solved(issue_id, solved)
        if self._feed is not None:
            await self._feed.refresh()
        return issue
