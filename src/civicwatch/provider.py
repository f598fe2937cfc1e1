"""Provider façade: the single point where a store backend is chosen.

``open_provider`` reads the mode from a :class:`BackendConfig`, builds
exactly one backend, and returns a :class:`Provider` that forwards every
operation to it unchanged.  Nothing outside this module asks which backend
is active.

If the backend cannot be constructed, the provider wraps an
:class:`UnconfiguredBackend` so every data operation fails with the same
``ConfigurationError`` instead of partially working.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from civicwatch.config import VALID_MODES, BackendConfig
from civicwatch.errors import ConfigurationError
from civicwatch.local_store import ImageDirectory, LocalStore
from civicwatch.remote_store import RemoteStore

if TYPE_CHECKING:
    from civicwatch.models import CreatedIssue, Identity, Issue, IssueDraft, VoteResult
    from civicwatch.store_base import StoreBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnconfiguredBackend:
    """Stand-in backend whose every operation raises the construction error."""

    backend_name = "unconfigured"

    def __init__(self, error: ConfigurationError) -> None:
        self.error = error

    def _fail(self) -> ConfigurationError:
        return ConfigurationError(self.error.message)

    async def list_issues(self, *, solved: bool | None = None) -> list[Issue]:
        raise self._fail() from self.error

    async def create_issue(self, draft: IssueDraft) -> CreatedIssue:
        raise self._fail() from self.error

    async def upvote_issue(self, issue_id: str) -> VoteResult:
        raise self._fail() from self.error

    async def set_solved(self, issue_id: str, solved: bool) -> Issue:
        raise self._fail() from self.error

    async def get_current_identity(self) -> Identity | None:
        raise self._fail() from self.error

    async def delete_issue(self, issue_id: str) -> None:
        raise self._fail() from self.error

    async def close(self) -> None:
        return None


def build_backend(config: BackendConfig) -> StoreBackend:
    """Construct the backend named by ``config.mode``. Raises ConfigurationError."""
    if config.mode not in VALID_MODES:
        msg = f"Unknown data mode '{config.mode}'. Valid modes: {', '.join(sorted(VALID_MODES))}"
        raise ConfigurationError(msg)

    if config.mode == "remote":
        return RemoteStore(
            config.supabase_url,
            config.supabase_key,
            bucket=config.bucket,
            access_token=config.access_token,
            refresh_token=config.refresh_token,
        )

    if config.db_path is None or config.images_dir is None:
        msg = "Local store needs a .civicwatch/ directory. Run 'civicwatch init' first."
        raise ConfigurationError(msg)
    store = LocalStore(config.db_path, images=ImageDirectory(config.images_dir), identity=config.identity)
    store.initialize()
    return store


class Provider:
    """Pure delegation boundary over one StoreBackend.

    No caching, merging or reordering: each call goes straight to the
    backend and its result or exception comes straight back.  Calls are
    logged with their duration.
    """

    def __init__(self, backend: StoreBackend) -> None:
        self._backend = backend

    @property
    def backend_name(self) -> str:
        return self._backend.backend_name

    @property
    def configuration_error(self) -> ConfigurationError | None:
        if isinstance(self._backend, UnconfiguredBackend):
            return self._backend.error
        return None

    async def __aenter__(self) -> Provider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _call(self, op: str, args: dict[str, object], fn: Callable[[], Awaitable[T]]) -> T:
        t0 = time.monotonic()
        try:
            result = await fn()
        except Exception as exc:
            logger.info(
                "op_error",
                extra={"op": op, "backend": self.backend_name, "args_data": args, "error": type(exc).__name__},
            )
            raise
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info("op_call", extra={"op": op, "backend": self.backend_name, "args_data": args, "duration_ms": duration_ms})
        return result

    async def list_issues(self, *, solved: bool | None = None) -> list[Issue]:
        return await self._call("list_issues", {"solved": solved}, lambda: self._backend.list_issues(solved=solved))

    async def create_issue(self, draft: IssueDraft) -> CreatedIssue:
        return await self._call(
            "create_issue",
            {"client_nonce": draft.client_nonce, "has_image": draft.image is not None},
            lambda: self._backend.create_issue(draft),
        )

    async def upvote_issue(self, issue_id: str) -> VoteResult:
        return await self._call("upvote_issue", {"issue_id": issue_id}, lambda: self._backend.upvote_issue(issue_id))

    async def set_solved(self, issue_id: str, solved: bool) -> Issue:
        return await self._call(
            "set_solved",
            {"issue_id": issue_id, "solved": solved},
            lambda: self._backend.set_solved(issue_id, solved),
        )

    async def get_current_identity(self) -> Identity | None:
        return await self._call("get_current_identity", {}, self._backend.get_current_identity)

    async def delete_issue(self, issue_id: str) -> None:
        await self._call("delete_issue", {"issue_id": issue_id}, lambda: self._backend.delete_issue(issue_id))

    async def close(self) -> None:
        await self._backend.close()


def open_provider(config: BackendConfig) -> Provider:
    """Select the backend once at startup. Never raises for a bad configuration."""
    try:
        backend: StoreBackend = build_backend(config)
    except ConfigurationError as exc:
        logger.error("backend_unconfigured", extra={"backend": config.mode, "error": str(exc)})
        backend = UnconfiguredBackend(exc)
    return Provider(backend)
