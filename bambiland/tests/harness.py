"""
Shared setup for API tests: in-memory backends and a temp fallback dir.
"""

import os
import tempfile
import unittest

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from bambiland.app import create_app
from bambiland.auth import create_access_token, hash_password
from bambiland.config import Settings, get_settings
from bambiland.db import InMemoryDbClient
from bambiland.dependencies import get_db_client, get_fallback_store, get_storage_client
from bambiland.fallback import DevFallbackStore
from bambiland.storage import InMemoryStorageClient

STORY_TEXT = (
    "Chapter One: The train arrives. Dawn steps onto the platform.\U0001F339"
    "Chapter Two: A letter. It was unsigned.\U0001F497"
    "Chapter Three: Night market! Lanterns everywhere."
)


def db_down(*_args, **_kwargs):
    raise OperationalError("SELECT 1", {}, Exception("connection refused"))


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        story_path = os.path.join(self._tmp.name, "story.md")
        with open(story_path, "w", encoding="utf-8") as f:
            f.write(STORY_TEXT)

        self.settings = Settings(
            dev_fallback_dir=os.path.join(self._tmp.name, "fallback"),
            story_file_path=story_path,
            bcrypt_rounds=4,
            dev_user_id=None,
        )
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.store = DevFallbackStore(self.settings.dev_fallback_dir)

        app = create_app()
        app.dependency_overrides[get_settings] = lambda: self.settings
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        app.dependency_overrides[get_fallback_store] = lambda: self.store
        self.client = TestClient(app)

    def make_user(self, username="alice", role="user", password="secret123"):
        return self.db.create_user(
            username, f"{username}@example.com", hash_password(password, 4), role=role
        )

    def auth_headers(self, user):
        token = create_access_token(user, self.settings)
        return {"Authorization": f"Bearer {token}"}
