"""Store backend contract shared by the local and remote stores."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from civicwatch.models import CreatedIssue, Identity, Issue, IssueDraft, VoteResult


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@runtime_checkable
class StoreBackend(Protocol):
    """Persistence and authorization primitives behind one contract.

    Both variants must give identical answers for the same sequence of
    calls: idempotent ``create_issue`` per ``client_nonce``, at most one
    counted vote per (issue, voter), and ``set_solved`` gated on the
    authority role.  Ordering of ``list_issues`` is newest first but callers
    should not depend on it; ordering belongs to the feed engine.
    """

    backend_name: str

    async def list_issues(self, *, solved: bool | None = None) -> list[Issue]: ...

    async def create_issue(self, draft: IssueDraft) -> CreatedIssue: ...

    async def upvote_issue(self, issue_id: str) -> VoteResult: ...

    async def set_solved(self, issue_id: str, solved: bool) -> Issue: ...

    async def get_current_identity(self) -> Identity | None: ...

    async def delete_issue(self, issue_id: str) -> None: ...

    async def close(self) -> None: ...
