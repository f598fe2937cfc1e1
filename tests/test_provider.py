"""Tests for the provider façade and backend selection."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from civicwatch.config import BackendConfig
from civicwatch.errors import ConfigurationError, NotFoundError
from civicwatch.local_store import LocalStore
from civicwatch.logging import setup_logging
from civicwatch.models import Identity, build_draft
from civicwatch.provider import Provider, UnconfiguredBackend, open_provider
from civicwatch.remote_store import RemoteStore
from civicwatch.store_base import StoreBackend
from tests._fake_supabase import FakeSupabase


def _local_config(tmp_path: Path, identity: Identity | None = None) -> BackendConfig:
    return BackendConfig(mode="local", civicwatch_dir=tmp_path, identity=identity)


class TestSelection:
    async def test_local_mode(self, tmp_path: Path, citizen: Identity) -> None:
        async with open_provider(_local_config(tmp_path, citizen)) as provider:
            assert provider.backend_name == "local"
            assert provider.configuration_error is None
            assert await provider.get_current_identity() == citizen
        assert (tmp_path / "civicwatch.db").exists()

    def test_remote_mode(self) -> None:
        provider = open_provider(
            BackendConfig(mode="remote", supabase_url="https://abc.supabase.co", supabase_key="anon")
        )
        assert provider.backend_name == "remote"

    @pytest.mark.parametrize(
        "config",
        [
            BackendConfig(mode="carrier-pigeon"),
            BackendConfig(mode="remote", supabase_url="not-a-url", supabase_key="anon"),
            BackendConfig(mode="remote", supabase_url="https://abc.supabase.co", supabase_key=None),
            BackendConfig(mode="local", civicwatch_dir=None),
        ],
        ids=["unknown-mode", "bad-url", "missing-key", "no-directory"],
    )
    async def test_misconfiguration_fails_every_operation(self, config: BackendConfig) -> None:
        provider = open_provider(config)
        assert provider.backend_name == "unconfigured"
        assert isinstance(provider.configuration_error, ConfigurationError)
        draft = build_draft("d", "a", client_nonce="n")
        for call in (
            provider.list_issues(),
            provider.create_issue(draft),
            provider.upvote_issue("x"),
            provider.set_solved("x", True),
            provider.get_current_identity(),
            provider.delete_issue("x"),
        ):
            with pytest.raises(ConfigurationError):
                await call

    def test_unopenable_database(self, tmp_path: Path) -> None:
        (tmp_path / "civicwatch.db").write_bytes(b"garbage" * 200)
        provider = open_provider(_local_config(tmp_path))
        assert provider.backend_name == "unconfigured"

    def test_misconfiguration_logged_once(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="civicwatch.provider"):
            open_provider(BackendConfig(mode="nope"))
        assert [r.getMessage() for r in caplog.records] == ["backend_unconfigured"]

    def test_backends_satisfy_protocol(self, tmp_path: Path) -> None:
        assert isinstance(LocalStore(tmp_path / "x.db"), StoreBackend)
        assert isinstance(RemoteStore(None, None, client=FakeSupabase()), StoreBackend)
        assert isinstance(UnconfiguredBackend(ConfigurationError("x")), StoreBackend)


class TestDelegation:
    async def test_results_pass_through_unchanged(self, store: LocalStore) -> None:
        provider = Provider(store)
        created = await provider.create_issue(build_draft("Pothole", "Main St", client_nonce="n1"))
        assert created.created is True
        assert [i.id for i in await provider.list_issues()] == [created.issue.id]
        assert [i.id for i in await store.list_issues()] == [created.issue.id]

    async def test_errors_pass_through_unchanged(self, store: LocalStore) -> None:
        provider = Provider(store)
        with pytest.raises(NotFoundError):
            await provider.upvote_issue("cw-missing")

    async def test_calls_are_logged(self, tmp_path: Path, store: LocalStore) -> None:
        logger = setup_logging(tmp_path)
        provider = Provider(store)
        await provider.list_issues(solved=True)
        with pytest.raises(NotFoundError):
            await provider.upvote_issue("cw-missing")
        for handler in logger.handlers:
            handler.flush()

        records = [json.loads(line) for line in (tmp_path / "civicwatch.log").read_text().splitlines()]
        call, error = records[-2], records[-1]
        assert call["msg"] == "op_call"
        assert call["op"] == "list_issues"
        assert call["backend"] == "local"
        assert call["args"] == {"solved": True}
        assert isinstance(call["duration_ms"], float)
        assert error["msg"] == "op_error"
        assert error["op"] == "upvote_issue"
        assert error["error"] == "NotFoundError"
