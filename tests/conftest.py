from __future__ import annotations

import os
import sys
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

# Ensure package imports work without an install (e.g., "meeting_scheduler.*")
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend")))

# -----------------------------------------------------------------------------
# Environment defaults for tests
# -----------------------------------------------------------------------------

# Keep the module-level app in meeting_scheduler.main away from Firebase
os.environ.setdefault("AUTH_BACKEND", "jwt")
os.environ.setdefault("STORE_BACKEND", "sql")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.abspath('.test.db')}")

from meeting_scheduler.core.settings import Settings  # noqa: E402
from meeting_scheduler.main import create_app  # noqa: E402
from meeting_scheduler.services.identity import JwtIdentityVerifier  # noqa: E402
from meeting_scheduler.services.meeting_store import SqlMeetingStore  # noqa: E402

TEST_SECRET = "test-secret-123"


class SpyStore:
    """Wraps a real store and records which methods were called."""

    def __init__(self, inner: Any) -> None:
        self.inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        def _recorded(*args: Any, **kwargs: Any) -> Any:
            self.calls.append(name)
            return attr(*args, **kwargs)

        return _recorded


# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------


@pytest.fixture()
def verifier() -> JwtIdentityVerifier:
    return JwtIdentityVerifier(TEST_SECRET)


@pytest.fixture()
def store(tmp_path) -> SpyStore:
    sql_store = SqlMeetingStore.from_url(f"sqlite:///{tmp_path / 'meetings.db'}", create_schema=True)
    yield SpyStore(sql_store)
    sql_store.engine.dispose()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        AUTH_BACKEND="jwt",
        STORE_BACKEND="sql",
        JWT_SECRET_KEY=TEST_SECRET,
        DATABASE_URL=f"sqlite:///{tmp_path / 'unused.db'}",
    )


# -----------------------------------------------------------------------------
# Test client + helpers
# -----------------------------------------------------------------------------


@pytest.fixture()
def app(settings, verifier, store):
    return create_app(settings, verifier=verifier, store=store)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_headers(verifier) -> Callable[[str], dict[str, str]]:
    def _headers(uid: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {verifier.issue(uid, email=f'{uid}@example.com')}"}

    return _headers


@pytest.fixture()
def create_meeting(client, auth_headers) -> Callable[..., dict[str, Any]]:
    """POST a meeting as `owner` and return the created meeting JSON."""

    def _create(owner: str = "alice", **fields: Any) -> dict[str, Any]:
        body = {"title": "Team Sync", **fields}
        r = client.post("/api/meetings", json=body, headers=auth_headers(owner))
        assert r.status_code == 201, r.text
        return r.json()["meeting"]

    return _create
