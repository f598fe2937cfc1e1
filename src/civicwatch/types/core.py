"""Foundational TypedDicts for to_dict() returns and config.json."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class RemoteConfig(TypedDict, total=False):
    """The ``remote`` block of .civicwatch/config.json."""

    url: str
    key: str
    bucket: str


class ProjectConfig(TypedDict, total=False):
    """Shape of .civicwatch/config.json."""

    version: int
    mode: str
    user_id: str
    role: str
    authority_code: str
    remote: RemoteConfig


class IssueDict(TypedDict):
    """Wire shape of a normalized issue."""

    id: str | None
    description: str
    address: str
    tags: list[str]
    imageRef: str | None
    solved: bool
    upvoteCount: int
    createdAt: ISOTimestamp | None
    createdBy: str


class IdentityDict(TypedDict):
    id: str
    email: str | None
    username: str | None
    role: str
