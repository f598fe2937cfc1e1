"""Shared validation functions for issue drafts and identities.

Pure functions with no click, supabase or SQLite dependencies.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

MAX_DESCRIPTION_LENGTH = 4000
MAX_ADDRESS_LENGTH = 300
MAX_TAG_LENGTH = 32
_MAX_IDENTITY_LENGTH = 128

# Separators accepted in free-text tag input ("road, lights  safety").
TAG_SEPARATORS = re.compile(r"[\s,]+")


def _find_control_char(value: str, *, allow: frozenset[str] = frozenset()) -> str | None:
    for ch in value:
        if ch in allow:
            continue
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return ch
    return None


def sanitize_text(value: Any, field: str, *, max_length: int, multiline: bool = False) -> tuple[str, str | None]:
    """Validate and clean a required free-text field.

    Returns (cleaned, None) on success or ("", error_message) on failure.
    Multiline fields may contain newlines and tabs; single-line fields may not.
    """
    if not isinstance(value, str):
        return ("", f"{field} must be a string")
    allow = frozenset("\n\r\t") if multiline else frozenset()
    bad = _find_control_char(value, allow=allow)
    if bad is not None:
        return ("", f"{field} must not contain control characters (found U+{ord(bad):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", f"{field} must not be empty")
    if len(cleaned) > max_length:
        return ("", f"{field} must be at most {max_length} characters")
    return (cleaned, None)


def sanitize_tag(value: Any) -> tuple[str, str | None]:
    """Validate a single tag label. Case is preserved."""
    cleaned, err = sanitize_text(value, "tag", max_length=MAX_TAG_LENGTH)
    if err is not None:
        return ("", err)
    if TAG_SEPARATORS.search(cleaned):
        return ("", f"tag must not contain spaces or commas: {cleaned!r}")
    return (cleaned, None)


def sanitize_identity(value: Any) -> tuple[str, str | None]:
    """Validate an identity id (local user id or remote user uuid)."""
    return sanitize_text(value, "identity", max_length=_MAX_IDENTITY_LENGTH)
