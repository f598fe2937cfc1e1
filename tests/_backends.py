"""Backend harness so contract tests run unchanged against both stores.

``harness.as_user(user_id, role=...)`` returns a store acting as that
identity over the same underlying data (same SQLite file, or same fake
Supabase project).
"""

from __future__ import annotations

from pathlib import Path

from civicwatch.local_store import ImageDirectory, LocalStore
from civicwatch.models import Identity, Role
from civicwatch.remote_store import RemoteStore
from civicwatch.store_base import StoreBackend
from tests._fake_supabase import FakeSupabase


class LocalHarness:
    name = "local"

    def __init__(self, tmp_path: Path) -> None:
        self.db_path = tmp_path / "civicwatch.db"
        self.images = ImageDirectory(tmp_path / "images")
        self._opened: list[LocalStore] = []

    def as_user(self, user_id: str | None, *, role: Role = "citizen") -> StoreBackend:
        identity = Identity(id=user_id, username=user_id, role=role) if user_id else None
        store = LocalStore(self.db_path, images=self.images, identity=identity)
        store.initialize()
        self._opened.append(store)
        return store

    def fail_uploads(self) -> None:
        self.images.root.parent.mkdir(parents=True, exist_ok=True)
        # A regular file where the images directory should be makes every save fail
        self.images.root.write_text("not a directory")

    async def close(self) -> None:
        for store in self._opened:
            await store.close()


class RemoteHarness:
    name = "remote"

    def __init__(self) -> None:
        self.fake = FakeSupabase()

    def as_user(self, user_id: str | None, *, role: Role = "citizen") -> StoreBackend:
        if user_id:
            self.fake.sign_in(user_id, role=role)
        else:
            self.fake.sign_out()
        return RemoteStore(None, None, client=self.fake)

    def fail_uploads(self) -> None:
        self.fake.fail_uploads = True

    async def close(self) -> None:
        return None
