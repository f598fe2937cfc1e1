"""Issue entity model and its normalization from backend representations.

Both stores hand raw rows to :func:`normalize_issue` before anything else
sees them, so the provider, feed engine and controllers only ever deal with
the canonical :class:`Issue`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, cast

from civicwatch.errors import UploadFailure
from civicwatch.types.core import IdentityDict, IssueDict, ISOTimestamp
from civicwatch.validation import (
    MAX_ADDRESS_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    TAG_SEPARATORS,
    sanitize_tag,
    sanitize_text,
)

logger = logging.getLogger(__name__)

Role = Literal["citizen", "authority"]
VALID_ROLES: frozenset[str] = frozenset({"citizen", "authority"})


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Issue:
    id: str | None
    description: str
    address: str
    tags: list[str] = field(default_factory=list)
    image_ref: str | None = None
    solved: bool = False
    upvote_count: int = 0
    created_at: datetime | None = None
    created_by: str = ""
    client_nonce: str | None = None
    # None when the backend does not expose individual voters
    voters: frozenset[str] | None = None

    def has_voted(self, identity_id: str) -> bool | None:
        """Whether *identity_id* already voted, or None if the backend hides voters."""
        if self.voters is None:
            return None
        return identity_id in self.voters

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "description": self.description,
            "address": self.address,
            "tags": list(self.tags),
            "imageRef": self.image_ref,
            "solved": self.solved,
            "upvoteCount": self.upvote_count,
            "createdAt": ISOTimestamp(self.created_at.isoformat()) if self.created_at else None,
            "createdBy": self.created_by,
        }


@dataclass(frozen=True)
class Identity:
    id: str
    email: str | None = None
    username: str | None = None
    role: Role = "citizen"

    @property
    def is_authority(self) -> bool:
        return self.role == "authority"

    def to_dict(self) -> IdentityDict:
        return {"id": self.id, "email": self.email, "username": self.username, "role": self.role}


@dataclass(frozen=True)
class ImagePayload:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return ext.lower() if dot and ext else "jpg"


@dataclass(frozen=True)
class IssueDraft:
    description: str
    address: str
    client_nonce: str
    tags: tuple[str, ...] = ()
    image: ImagePayload | None = None


@dataclass
class CreatedIssue:
    """Result of ``create_issue``: the record plus non-fatal warnings."""

    issue: Issue
    created: bool = True
    warnings: list[UploadFailure] = field(default_factory=list)


@dataclass(frozen=True)
class VoteResult:
    ok: bool = True
    counted: bool = True


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def normalize_tags(values: Iterable[str] | None) -> list[str]:
    """Strip, drop empties, and collapse case-insensitive duplicates (first spelling wins)."""
    result: list[str] = []
    seen: set[str] = set()
    for raw in values or ():
        if not isinstance(raw, str):
            continue
        tag = raw.strip()
        if not tag or tag.casefold() in seen:
            continue
        seen.add(tag.casefold())
        result.append(tag)
    return result


def parse_tag_input(text: str, existing: Iterable[str] = ()) -> list[str]:
    """Split free-text tag input on whitespace/commas and merge into *existing*."""
    return normalize_tags([*existing, *TAG_SEPARATORS.split(text or "")])


def build_draft(
    description: str,
    address: str,
    *,
    client_nonce: str,
    tags: Iterable[str] = (),
    image: ImagePayload | None = None,
) -> IssueDraft:
    """Validate user input and return an immutable draft.

    Raises ValueError for blank/oversized text, malformed tags, or a
    non-image payload.
    """
    description, err = sanitize_text(description, "description", max_length=MAX_DESCRIPTION_LENGTH, multiline=True)
    if err is not None:
        raise ValueError(err)
    address, err = sanitize_text(address, "address", max_length=MAX_ADDRESS_LENGTH)
    if err is not None:
        raise ValueError(err)
    if not client_nonce:
        msg = "client_nonce must not be empty"
        raise ValueError(msg)

    cleaned_tags: list[str] = []
    for tag in normalize_tags(tags):
        cleaned, err = sanitize_tag(tag)
        if err is not None:
            raise ValueError(err)
        cleaned_tags.append(cleaned)

    if image is not None and not image.content_type.startswith("image/"):
        msg = f"Please select an image file (got {image.content_type!r})"
        raise ValueError(msg)

    return IssueDraft(
        description=description,
        address=address,
        client_nonce=client_nonce,
        tags=tuple(cleaned_tags),
        image=image,
    )


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(UTC)


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 text, a datetime, or epoch milliseconds. Naive values are UTC."""
    if value is None or isinstance(value, bool):
        return None
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable timestamp %r", value)
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _upvote_count(raw: Mapping[str, Any], voters: frozenset[str] | None) -> int:
    value = _first(raw, "upvote_count", "upvoteCount", "upvotes")
    if value is None:
        # PostgREST relational aggregate: "uv": [{"count": 3}]
        aggregate = raw.get("uv")
        if isinstance(aggregate, list) and aggregate and isinstance(aggregate[0], Mapping):
            value = aggregate[0].get("count")
    if value is None and voters is not None:
        return len(voters)
    try:
        count = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


def _tags(value: Any) -> list[str]:
    if isinstance(value, str):
        return parse_tag_input(value.replace(";", ","))
    if isinstance(value, list | tuple | set | frozenset):
        return normalize_tags(cast(Iterable[str], value))
    return []


def normalize_issue(raw: Mapping[str, Any], *, synthetic: bool = False) -> Issue:
    """Convert a backend row into the canonical Issue.

    Total: missing optional fields take their defaults.  A missing
    ``created_at`` becomes "now" only for *synthetic* records; rows from a
    durable backend keep ``None`` rather than an invented timestamp.
    """
    raw_voters = raw.get("voters")
    voters = frozenset(str(v) for v in raw_voters) if isinstance(raw_voters, list | tuple | set | frozenset) else None

    created_at = parse_timestamp(_first(raw, "created_at", "createdAt"))
    if created_at is None and synthetic:
        created_at = _now()

    raw_id = raw.get("id")
    image_ref = _first(raw, "image_ref", "imageRef", "image_url", "imageDataUrl")

    return Issue(
        id=str(raw_id) if raw_id is not None else None,
        description=str(raw.get("description") or ""),
        address=str(raw.get("address") or ""),
        tags=_tags(raw.get("tags")),
        image_ref=str(image_ref) if image_ref else None,
        solved=bool(raw.get("solved", False)),
        upvote_count=_upvote_count(raw, voters),
        created_at=created_at,
        created_by=str(_first(raw, "created_by", "createdBy", "submitterId") or ""),
        client_nonce=_first(raw, "client_nonce", "clientNonce"),
        voters=voters,
    )


def identity_from_profile(user_id: str, *, email: str | None, profile: Mapping[str, Any] | None) -> Identity:
    """Build an Identity from an auth user and its (optional) profile row."""
    profile = profile or {}
    role = str(profile.get("role") or "citizen")
    if role not in VALID_ROLES:
        logger.warning("Unknown role '%s' for %s, treating as citizen", role, user_id)
        role = "citizen"
    return Identity(
        id=user_id,
        email=email,
        username=profile.get("username"),
        role=cast(Role, role),
    )
