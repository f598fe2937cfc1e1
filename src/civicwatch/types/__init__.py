# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from models.py, the stores, or the provider. This prevents circular imports.
"""Typed wire/config contracts for civicwatch."""

from __future__ import annotations

from civicwatch.types.core import (
    IdentityDict,
    IssueDict,
    ISOTimestamp,
    ProjectConfig,
    RemoteConfig,
)

__all__ = [
    "ISOTimestamp",
    "IdentityDict",
    "IssueDict",
    "ProjectConfig",
    "RemoteConfig",
]
