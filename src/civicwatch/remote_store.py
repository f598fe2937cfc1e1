"""Remote store: a networked, multi-writer issue table on Supabase.

The server is consumed, not designed here.  The store relies on these
server-side guarantees:

- ``issues.client_nonce`` carries a UNIQUE constraint, so concurrent
  retries of one submission race safely: one insert wins and the loser
  reads the winner back by nonce.
- ``issue_upvotes`` has UNIQUE ``(issue_id, user_id)``; a duplicate vote is
  reported as a unique violation and treated as success.
- ``set_issue_solved(p_issue_id, p_solved)`` is a single authorized RPC, so
  concurrent authority actions never lose updates to a client-side
  read-modify-write.

Individual voters are never exposed to the client (``Issue.voters`` is None).
"""

from __future__ import annotations

import contextlib
import inspect
import logging
import uuid
from collections.abc import Iterator
from typing import Any
from urllib.parse import urlparse

import httpx
from supabase import (
    AsyncClient,
    AuthError,
    AuthRetryableError,
    PostgrestAPIError,
    StorageException,
    acreate_client,
)

from civicwatch.errors import (
    AuthenticationRequiredError,
    AuthorizationError,
    CivicWatchError,
    ConfigurationError,
    DuplicateConflict,
    NotFoundError,
    TransientNetworkError,
    UnsupportedOperationError,
    UploadFailure,
)
from civicwatch.models import (
    CreatedIssue,
    Identity,
    ImagePayload,
    Issue,
    IssueDraft,
    VoteResult,
    identity_from_profile,
    normalize_issue,
)

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "issues"
ISSUE_COLUMNS = "id, description, address, tags, image_url, created_at, solved, created_by, client_nonce, uv:issue_upvotes(count)"

# PostgreSQL / PostgREST error codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INSUFFICIENT_PRIVILEGE = "42501"
NO_DATA_FOUND = "P0002"
NO_ROWS_FOR_SINGLE = "PGRST116"


def is_http_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _is_unique_violation(exc: PostgrestAPIError) -> bool:
    message = str(getattr(exc, "message", "") or "")
    return getattr(exc, "code", None) == UNIQUE_VIOLATION or "duplicate" in message.lower()


def _translate_api_error(
    exc: PostgrestAPIError,
    operation: str,
    *,
    issue_id: str | None = None,
    identity_id: str | None = None,
) -> CivicWatchError:
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    if code == INSUFFICIENT_PRIVILEGE:
        return AuthorizationError(operation, identity_id)
    if issue_id is not None and code in (FOREIGN_KEY_VIOLATION, NO_DATA_FOUND, NO_ROWS_FOR_SINGLE):
        return NotFoundError(issue_id)
    return TransientNetworkError(f"Failed to {operation}: {message} ({code})")


@contextlib.contextmanager
def _backend_call(operation: str, *, issue_id: str | None = None, identity_id: str | None = None) -> Iterator[None]:
    """Translate PostgREST and transport failures into the error taxonomy."""
    try:
        yield
    except PostgrestAPIError as exc:
        raise _translate_api_error(exc, operation, issue_id=issue_id, identity_id=identity_id) from exc
    except httpx.HTTPError as exc:
        raise TransientNetworkError(f"Failed to {operation}: {exc}") from exc


class RemoteStore:
    """Supabase-backed implementation of the StoreBackend contract."""

    backend_name = "remote"

    def __init__(
        self,
        url: str | None,
        key: str | None,
        *,
        bucket: str = DEFAULT_BUCKET,
        access_token: str | None = None,
        refresh_token: str | None = None,
        client: AsyncClient | None = None,
    ) -> None:
        self._endpoint: tuple[str, str] | None = None
        if client is None:
            if url is None or not is_http_url(url):
                msg = f"Remote store URL must be an http(s) URL, got {url!r}"
                raise ConfigurationError(msg)
            if not key:
                msg = "Remote store key is missing"
                raise ConfigurationError(msg)
            self._endpoint = (url, key)
        self.url = url
        self.key = key
        self.bucket = bucket
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._sb: AsyncClient | None = client

    async def _client(self) -> AsyncClient:
        if self._sb is None:
            if self._endpoint is None:
                msg = "Remote store has no URL and key to connect with"
                raise ConfigurationError(msg)
            url, key = self._endpoint
            try:
                sb = await acreate_client(url, key)
            except Exception as exc:
                msg = f"Cannot create remote client for {url}: {exc}"
                raise ConfigurationError(msg) from exc
            if self._access_token and self._refresh_token:
                try:
                    await sb.auth.set_session(self._access_token, self._refresh_token)
                except AuthRetryableError as exc:
                    msg = f"Failed to restore session: {exc}"
                    raise TransientNetworkError(msg) from exc
                except AuthError as exc:
                    msg = f"Configured session was rejected by the identity provider: {exc}"
                    raise ConfigurationError(msg) from exc
            self._sb = sb
        return self._sb

    async def close(self) -> None:
        """Close the HTTP sessions of a client this store created.

        An injected client belongs to the caller and is left open.
        """
        if self._endpoint is None or self._sb is None:
            return
        sb, self._sb = self._sb, None
        for component in (sb.postgrest, sb.storage):
            aclose = getattr(component, "aclose", None)
            if aclose is None:
                continue
            result = aclose()
            if inspect.isawaitable(result):
                await result

    # -- Identity ------------------------------------------------------------

    async def _current_user(self, sb: AsyncClient) -> Any | None:
        try:
            with _backend_call("read the current session"):
                response = await sb.auth.get_user()
        except AuthRetryableError as exc:
            # Connection failures and 502/503/504 from the auth server
            msg = f"Failed to read the current session: {exc}"
            raise TransientNetworkError(msg) from exc
        except AuthError as exc:
            logger.info("Session rejected by identity provider: %s", exc)
            return None
        return getattr(response, "user", None) if response is not None else None

    async def _require_user(self, sb: AsyncClient, operation: str) -> Any:
        user = await self._current_user(sb)
        if user is None:
            raise AuthenticationRequiredError(operation)
        return user

    async def get_current_identity(self) -> Identity | None:
        sb = await self._client()
        user = await self._current_user(sb)
        if user is None:
            return None
        with _backend_call("load profile"):
            response = await sb.table("profiles").select("*").eq("id", user.id).limit(1).execute()
        profile = response.data[0] if response.data else None
        return identity_from_profile(str(user.id), email=getattr(user, "email", None), profile=profile)

    # -- Reads ---------------------------------------------------------------

    async def list_issues(self, *, solved: bool | None = None) -> list[Issue]:
        sb = await self._client()
        query = sb.table("issues").select(ISSUE_COLUMNS)
        if solved is not None:
            query = query.eq("solved", solved)
        with _backend_call("list issues"):
            response = await query.order("created_at", desc=True).execute()
        return [normalize_issue(row) for row in response.data or []]

    async def _fetch_one(self, sb: AsyncClient, column: str, value: str) -> Issue | None:
        with _backend_call("load issue"):
            response = await sb.table("issues").select(ISSUE_COLUMNS).eq(column, value).limit(1).execute()
        return normalize_issue(response.data[0]) if response.data else None

    # -- Mutations -----------------------------------------------------------

    async def create_issue(self, draft: IssueDraft) -> CreatedIssue:
        sb = await self._client()
        user = await self._require_user(sb, "report issues")

        warnings: list[UploadFailure] = []
        image_url = None
        if draft.image is not None:
            try:
                image_url = await self._upload_image(sb, draft.image)
            except UploadFailure as failure:
                logger.warning("create_issue: %s; inserting without image", failure)
                warnings.append(failure)

        payload = {
            "description": draft.description,
            "address": draft.address,
            "tags": list(draft.tags),
            "image_url": image_url,
            "created_by": str(user.id),
            "client_nonce": draft.client_nonce,
        }

        rows: list[dict[str, Any]] = []
        with _backend_call("create issue"):
            try:
                response = await (
                    sb.table("issues").upsert(payload, on_conflict="client_nonce", ignore_duplicates=True).execute()
                )
                rows = response.data or []
            except PostgrestAPIError as exc:
                if not _is_unique_violation(exc):
                    raise

        if rows:
            return CreatedIssue(issue=normalize_issue(rows[0]), warnings=warnings)

        conflict = DuplicateConflict("client_nonce", draft.client_nonce)
        logger.info("create_issue: %s, reading back existing record", conflict)
        existing = await self._fetch_one(sb, "client_nonce", draft.client_nonce)
        if existing is None:
            msg = f"Nonce {draft.client_nonce} conflicted but no record is visible"
            raise TransientNetworkError(msg) from conflict
        return CreatedIssue(issue=existing, created=False, warnings=warnings)

    async def _upload_image(self, sb: AsyncClient, payload: ImagePayload) -> str:
        path = f"issues/{uuid.uuid4()}.{payload.extension}"
        bucket = sb.storage.from_(self.bucket)
        try:
            await bucket.upload(path, payload.content, {"content-type": payload.content_type, "upsert": "false"})
            url = bucket.get_public_url(path)
            if inspect.isawaitable(url):
                url = await url
        except (StorageException, httpx.HTTPError) as exc:
            raise UploadFailure(payload.filename, str(exc)) from exc
        return str(url)

    async def upvote_issue(self, issue_id: str) -> VoteResult:
        sb = await self._client()
        user = await self._require_user(sb, "upvote")
        with _backend_call("upvote", issue_id=issue_id):
            try:
                await sb.table("issue_upvotes").insert({"issue_id": issue_id, "user_id": str(user.id)}).execute()
            except PostgrestAPIError as exc:
                if not _is_unique_violation(exc):
                    raise
                conflict = DuplicateConflict("vote", f"{issue_id}/{user.id}")
                logger.debug("upvote_issue: %s swallowed", conflict)
                return VoteResult(ok=True, counted=False)
        return VoteResult(ok=True, counted=True)

    async def set_solved(self, issue_id: str, solved: bool) -> Issue:
        sb = await self._client()
        user = await self._require_user(sb, "change issue status")
        with _backend_call("change issue status", issue_id=issue_id, identity_id=str(user.id)):
            response = await sb.rpc("set_issue_solved", {"p_issue_id": issue_id, "p_solved": bool(solved)}).execute()
        data = response.data
        row = data[0] if isinstance(data, list) and data else data
        if not row:
            raise NotFoundError(issue_id)
        # The RPC row lacks the vote aggregate; read the full record back.
        issue = await self._fetch_one(sb, "id", issue_id)
        return issue if issue is not None else normalize_issue(row)

    async def delete_issue(self, issue_id: str) -> None:
        raise UnsupportedOperationError("delete", self.backend_name)
