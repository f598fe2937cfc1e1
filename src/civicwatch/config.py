"""Convention-based project discovery and backend configuration.

Each project has a ``.civicwatch/`` directory containing ``config.json``
(backend mode, local identity, remote endpoint), the local store database
and its images.  Environment variables (optionally from a ``.env`` file)
override the remote settings so keys need not live in the repository.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from dotenv import find_dotenv, load_dotenv

from civicwatch.local_store import IMAGES_DIR_NAME
from civicwatch.models import VALID_ROLES, Identity, Role
from civicwatch.types.core import ProjectConfig, RemoteConfig
from civicwatch.validation import sanitize_identity

logger = logging.getLogger(__name__)

CIVICWATCH_DIR_NAME = ".civicwatch"
DB_FILENAME = "civicwatch.db"
CONFIG_FILENAME = "config.json"

VALID_MODES: frozenset[str] = frozenset({"local", "remote"})

ENV_DATA_MODE = "CIVICWATCH_DATA_MODE"
ENV_SUPABASE_URL = "CIVICWATCH_SUPABASE_URL"
ENV_SUPABASE_KEY = "CIVICWATCH_SUPABASE_KEY"
ENV_ACCESS_TOKEN = "CIVICWATCH_ACCESS_TOKEN"
ENV_REFRESH_TOKEN = "CIVICWATCH_REFRESH_TOKEN"

DEFAULT_AUTHORITY_CODE = "AUTH-2025"


def find_civicwatch_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .civicwatch/ directory.

    Returns the .civicwatch/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / CIVICWATCH_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {CIVICWATCH_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def default_config() -> ProjectConfig:
    return ProjectConfig(version=1, mode="local", user_id="", role="citizen")


def read_config(civicwatch_dir: Path) -> ProjectConfig:
    """Read .civicwatch/config.json. Returns defaults if missing or corrupt."""
    defaults = default_config()
    config_path = civicwatch_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        parsed = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(parsed, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    return cast(ProjectConfig, {**defaults, **parsed})


def write_config(civicwatch_dir: Path, config: Mapping[str, Any] | ProjectConfig) -> None:
    """Write .civicwatch/config.json."""
    config_path = civicwatch_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def generate_user_id() -> str:
    """A stable anonymous-but-distinct local user id, minted once at init."""
    return f"user_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class BackendConfig:
    """Everything the provider needs to construct exactly one backend."""

    mode: str
    civicwatch_dir: Path | None = None
    identity: Identity | None = None
    supabase_url: str | None = None
    supabase_key: str | None = None
    bucket: str = "issues"
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def db_path(self) -> Path | None:
        return self.civicwatch_dir / DB_FILENAME if self.civicwatch_dir is not None else None

    @property
    def images_dir(self) -> Path | None:
        return self.civicwatch_dir / IMAGES_DIR_NAME if self.civicwatch_dir is not None else None


def _local_identity(config: ProjectConfig) -> Identity | None:
    raw_id = config.get("user_id") or ""
    if not raw_id:
        return None
    user_id, err = sanitize_identity(raw_id)
    if err is not None:
        logger.warning("Ignoring user_id in config: %s", err)
        return None
    role = config.get("role", "citizen")
    if role not in VALID_ROLES:
        logger.warning("Unknown role '%s' in config, falling back to 'citizen'", role)
        role = "citizen"
    return Identity(id=user_id, username="local", role=cast(Role, role))


def load_backend_config(
    civicwatch_dir: Path | None,
    *,
    environ: Mapping[str, str] | None = None,
    dotenv: bool = True,
) -> BackendConfig:
    """Merge config.json with environment overrides into a BackendConfig.

    The mode is validated later by the provider so that a bad mode turns
    into a ConfigurationError on every data operation instead of a crash here.
    """
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True))
    env = os.environ if environ is None else environ
    config = read_config(civicwatch_dir) if civicwatch_dir is not None else default_config()
    remote: RemoteConfig = config.get("remote") or {}

    mode = (env.get(ENV_DATA_MODE) or config.get("mode") or "local").strip().lower()
    return BackendConfig(
        mode=mode,
        civicwatch_dir=civicwatch_dir,
        identity=_local_identity(config),
        supabase_url=env.get(ENV_SUPABASE_URL) or remote.get("url"),
        supabase_key=env.get(ENV_SUPABASE_KEY) or remote.get("key"),
        bucket=remote.get("bucket") or "issues",
        access_token=env.get(ENV_ACCESS_TOKEN),
        refresh_token=env.get(ENV_REFRESH_TOKEN),
    )
