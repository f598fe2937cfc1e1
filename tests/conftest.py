"""Shared pytest fixtures for civicwatch tests."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from civicwatch.config import ENV_ACCESS_TOKEN, ENV_DATA_MODE, ENV_REFRESH_TOKEN, ENV_SUPABASE_KEY, ENV_SUPABASE_URL
from civicwatch.local_store import ImageDirectory, LocalStore
from civicwatch.models import Identity, ImagePayload
from civicwatch.remote_store import RemoteStore
from tests._backends import LocalHarness, RemoteHarness
from tests._fake_supabase import FakeSupabase

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's CIVICWATCH_* environment out of the tests."""
    for name in (ENV_DATA_MODE, ENV_SUPABASE_URL, ENV_SUPABASE_KEY, ENV_ACCESS_TOKEN, ENV_REFRESH_TOKEN):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_civicwatch_logger() -> Generator[None, None, None]:
    """Drop file handlers added by setup_logging so tmp dirs can be cleaned up."""
    yield
    logger = logging.getLogger("civicwatch")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def citizen() -> Identity:
    return Identity(id="user_alice", username="alice", role="citizen")


@pytest.fixture
def authority() -> Identity:
    return Identity(id="user_officer", username="officer", role="authority")


@pytest.fixture
def png() -> ImagePayload:
    return ImagePayload(filename="pothole.png", content=PNG_BYTES, content_type="image/png")


@pytest.fixture
async def store(tmp_path: Path, citizen: Identity) -> AsyncGenerator[LocalStore, None]:
    """Fresh LocalStore acting as a citizen."""
    s = LocalStore(tmp_path / "civicwatch.db", images=ImageDirectory(tmp_path / "images"), identity=citizen)
    s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def authority_store(tmp_path: Path, authority: Identity) -> AsyncGenerator[LocalStore, None]:
    """LocalStore over the same file as ``store`` but acting as an authority."""
    s = LocalStore(tmp_path / "civicwatch.db", images=ImageDirectory(tmp_path / "images"), identity=authority)
    s.initialize()
    yield s
    await s.close()


@pytest.fixture
def fake_sb() -> FakeSupabase:
    fake = FakeSupabase()
    fake.sign_in("user_alice", role="citizen")
    return fake


@pytest.fixture
def remote_store(fake_sb: FakeSupabase) -> RemoteStore:
    return RemoteStore(None, None, client=fake_sb)


@pytest.fixture(params=["local", "remote"])
async def harness(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncGenerator[LocalHarness | RemoteHarness, None]:
    """Parametrized over both store variants."""
    h: LocalHarness | RemoteHarness = LocalHarness(tmp_path) if request.param == "local" else RemoteHarness()
    yield h
    await h.close()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
