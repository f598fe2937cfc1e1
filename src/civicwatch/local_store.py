"""Local store: a single-process durable issue table backed by SQLite.

One writer, no daemon, no sync.  Uniqueness of ``client_nonce`` and of
(issue, voter) pairs is enforced by the schema itself, so a retried
submission or a repeated vote resolves to the existing row rather than a
second one.  Image bytes go to an injected :class:`ImageDirectory`.

Convention-based layout inside ``.civicwatch/``::

    civicwatch.db     SQLite database
    images/           uploaded image files
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from civicwatch.errors import (
    AuthenticationRequiredError,
    AuthorizationError,
    ConfigurationError,
    DuplicateConflict,
    NotFoundError,
    UploadFailure,
)
from civicwatch.models import CreatedIssue, Identity, ImagePayload, Issue, IssueDraft, VoteResult, normalize_issue
from civicwatch.store_base import _now_iso

logger = logging.getLogger(__name__)

IMAGES_DIR_NAME = "images"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS issues (
    id           TEXT PRIMARY KEY,
    description  TEXT NOT NULL,
    address      TEXT NOT NULL,
    image_ref    TEXT,
    solved       INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    created_by   TEXT NOT NULL DEFAULT '',
    client_nonce TEXT NOT NULL UNIQUE,

    CHECK (solved IN (0, 1))
);

CREATE INDEX IF NOT EXISTS idx_issues_created ON issues(created_at);
CREATE INDEX IF NOT EXISTS idx_issues_created_by ON issues(created_by);

CREATE TABLE IF NOT EXISTS issue_tags (
    issue_id TEXT NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    tag      TEXT NOT NULL COLLATE NOCASE,
    position INTEGER NOT NULL,
    PRIMARY KEY (issue_id, tag)
);

CREATE TABLE IF NOT EXISTS issue_upvotes (
    issue_id   TEXT NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    voter      TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (issue_id, voter)
);
"""

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Image storage
# ---------------------------------------------------------------------------


class ImageDirectory:
    """Stores uploaded image bytes as files and hands back a relative reference."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def save(self, payload: ImagePayload) -> str:
        """Write *payload* and return its reference (``images/<name>``). Raises OSError."""
        self.root.mkdir(parents=True, exist_ok=True)
        name = f"{uuid.uuid4().hex}.{payload.extension}"
        (self.root / name).write_bytes(payload.content)
        return f"{IMAGES_DIR_NAME}/{name}"

    def discard(self, ref: str | None) -> None:
        """Best-effort removal of a previously saved image."""
        if not ref:
            return
        with contextlib.suppress(OSError):
            (self.root / Path(ref).name).unlink()


# ---------------------------------------------------------------------------
# LocalStore
# ---------------------------------------------------------------------------


class LocalStore:
    """Direct SQLite operations behind the StoreBackend contract."""

    backend_name = "local"

    def __init__(
        self,
        db_path: str | Path,
        *,
        images: ImageDirectory | None = None,
        identity: Identity | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.images = images
        self._identity = identity
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    async def __aenter__(self) -> LocalStore:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables for a fresh database, or verify an existing one.

        Raises ConfigurationError when the file is not a usable database or
        was written by a newer schema.
        """
        try:
            current_version = self.get_schema_version()
            if current_version == 0:
                self.conn.executescript(SCHEMA_SQL)
                self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
                self.conn.commit()
        except sqlite3.DatabaseError as exc:
            msg = f"Cannot open local store at {self.db_path}: {exc}"
            raise ConfigurationError(msg) from exc
        if current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Local store schema v{current_version} is newer than supported v{CURRENT_SCHEMA_VERSION}"
            raise ConfigurationError(msg)

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _generate_unique_id(self) -> str:
        """Generate an issue id using O(1) EXISTS checks against the PK index."""
        for _ in range(10):
            candidate = f"cw-{uuid.uuid4().hex[:10]}"
            if self.conn.execute("SELECT 1 FROM issues WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"cw-{uuid.uuid4().hex[:16]}"

    # -- Identity ------------------------------------------------------------

    async def get_current_identity(self) -> Identity | None:
        return self._identity

    def _require_identity(self, operation: str) -> Identity:
        if self._identity is None:
            raise AuthenticationRequiredError(operation)
        return self._identity

    def _require_authority(self, operation: str) -> Identity:
        identity = self._require_identity(operation)
        if not identity.is_authority:
            raise AuthorizationError(operation, identity.id)
        return identity

    # -- Reads ---------------------------------------------------------------

    def get_issue(self, issue_id: str) -> Issue:
        issues = self._build_issues_batch([issue_id])
        if not issues:
            raise NotFoundError(issue_id)
        return issues[0]

    def _find_by_nonce(self, client_nonce: str) -> Issue | None:
        row = self.conn.execute("SELECT id FROM issues WHERE client_nonce = ?", (client_nonce,)).fetchone()
        return self.get_issue(row["id"]) if row is not None else None

    async def list_issues(self, *, solved: bool | None = None) -> list[Issue]:
        where = ""
        params: list[Any] = []
        if solved is not None:
            where = " WHERE solved = ?"
            params.append(int(solved))
        rows = self.conn.execute(
            f"SELECT id FROM issues{where} ORDER BY created_at DESC, rowid DESC",
            params,
        ).fetchall()
        return self._build_issues_batch([r["id"] for r in rows])

    def _build_issues_batch(self, issue_ids: list[str]) -> list[Issue]:
        """Build multiple Issues with batched queries (no N+1)."""
        if not issue_ids:
            return []

        placeholders = ",".join("?" * len(issue_ids))

        rows_by_id: dict[str, sqlite3.Row] = {}
        for r in self.conn.execute(f"SELECT * FROM issues WHERE id IN ({placeholders})", issue_ids).fetchall():
            rows_by_id[r["id"]] = r

        tags_by_id: dict[str, list[str]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            f"SELECT issue_id, tag FROM issue_tags WHERE issue_id IN ({placeholders}) ORDER BY issue_id, position",
            issue_ids,
        ).fetchall():
            tags_by_id[r["issue_id"]].append(r["tag"])

        voters_by_id: dict[str, list[str]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            f"SELECT issue_id, voter FROM issue_upvotes WHERE issue_id IN ({placeholders})",
            issue_ids,
        ).fetchall():
            voters_by_id[r["issue_id"]].append(r["voter"])

        # Preserve input order
        result: list[Issue] = []
        for iid in issue_ids:
            row = rows_by_id.get(iid)
            if row is None:
                continue
            raw = dict(row)
            raw["tags"] = tags_by_id[iid]
            raw["voters"] = voters_by_id[iid]
            raw["upvote_count"] = len(voters_by_id[iid])
            result.append(normalize_issue(raw))
        return result

    # -- Mutations -----------------------------------------------------------

    async def create_issue(self, draft: IssueDraft) -> CreatedIssue:
        existing = self._find_by_nonce(draft.client_nonce)
        if existing is not None:
            logger.info("create_issue: nonce %s already stored as %s", draft.client_nonce, existing.id)
            return CreatedIssue(issue=existing, created=False)

        warnings: list[UploadFailure] = []
        image_ref = None
        if draft.image is not None:
            try:
                image_ref = self._save_image(draft.image)
            except UploadFailure as failure:
                logger.warning("create_issue: %s; creating without image", failure)
                warnings.append(failure)

        issue_id = self._generate_unique_id()
        created_by = self._identity.id if self._identity is not None else ""

        try:
            self._insert_issue(issue_id, draft, image_ref=image_ref, created_by=created_by)
        except Exception as exc:
            if self.images is not None:
                self.images.discard(image_ref)
            if not isinstance(exc, DuplicateConflict):
                raise
            # Another writer on the same file won the race for this nonce
            logger.info("create_issue: %s, returning existing record", exc)
            existing = self._find_by_nonce(draft.client_nonce)
            if existing is None:  # pragma: no cover
                raise
            return CreatedIssue(issue=existing, created=False)

        return CreatedIssue(issue=self.get_issue(issue_id), warnings=warnings)

    def _save_image(self, payload: ImagePayload) -> str:
        if self.images is None:
            raise UploadFailure(payload.filename, "no image storage configured")
        try:
            return self.images.save(payload)
        except OSError as exc:
            raise UploadFailure(payload.filename, str(exc)) from exc

    def _insert_issue(self, issue_id: str, draft: IssueDraft, *, image_ref: str | None, created_by: str) -> None:
        try:
            self.conn.execute(
                "INSERT INTO issues (id, description, address, image_ref, solved, created_at, created_by, client_nonce) "
                "VALUES (?, ?, ?, ?, 0, ?, ?, ?)",
                (issue_id, draft.description, draft.address, image_ref, _now_iso(), created_by, draft.client_nonce),
            )
            for position, tag in enumerate(draft.tags):
                self.conn.execute(
                    "INSERT OR IGNORE INTO issue_tags (issue_id, tag, position) VALUES (?, ?, ?)",
                    (issue_id, tag, position),
                )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if "client_nonce" in str(exc):
                raise DuplicateConflict("client_nonce", draft.client_nonce) from exc
            raise
        except Exception:
            self.conn.rollback()
            raise

    async def upvote_issue(self, issue_id: str) -> VoteResult:
        voter = self._require_identity("upvote").id
        self.get_issue(issue_id)
        try:
            self.conn.execute(
                "INSERT INTO issue_upvotes (issue_id, voter, created_at) VALUES (?, ?, ?)",
                (issue_id, voter, _now_iso()),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if "UNIQUE" not in str(exc):
                raise
            conflict = DuplicateConflict("vote", f"{issue_id}/{voter}")
            logger.debug("upvote_issue: %s swallowed", conflict)
            return VoteResult(ok=True, counted=False)
        return VoteResult(ok=True, counted=True)

    async def set_solved(self, issue_id: str, solved: bool) -> Issue:
        self._require_authority("change issue status")
        try:
            cursor = self.conn.execute("UPDATE issues SET solved = ? WHERE id = ?", (int(bool(solved)), issue_id))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        if cursor.rowcount == 0:
            raise NotFoundError(issue_id)
        return self.get_issue(issue_id)

    async def delete_issue(self, issue_id: str) -> None:
        self._require_authority("delete issues")
        issue = self.get_issue(issue_id)
        try:
            self.conn.execute("DELETE FROM issues WHERE id = ?", (issue_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        if self.images is not None:
            self.images.discard(issue.image_ref)
