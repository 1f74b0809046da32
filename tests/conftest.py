"""
tests/conftest.py -- Shared test fixtures for SoundHub integration tests.

This module provides:
  - write_catalog(): writes a small deterministic authors/tracks/playlists set
  - FakeProvider: an OAuthProvider that never touches the network
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores: fresh UserStore / LikeStore / CatalogStore in a tmp_path
  - client: TestClient with follow_redirects=False over the full ASGI app

Every test gets its own data directory (tmp_path) and its own client, so the
cookie jar (the session) never leaks between tests.

The environment must be set before any project import: DEBUG so
get_settings() auto-generates SECRET_KEY instead of raising, ALLOWED_HOSTS so
TrustedHostMiddleware accepts "testserver", and a generous login rate limit
so repeated logins across the suite never hit 429.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# CRITICAL: Set env before any core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="soundhub-data-"))
os.environ.setdefault("PUBLIC_DIR", tempfile.mkdtemp(prefix="soundhub-public-"))

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.models import ExternalIdentity
from auth.oauth import OAuthProvider
from auth.store import UserStore
from catalog.store import CatalogStore
from core.errors import OAuthProviderError
from likes.store import LikeStore

# ---------------------------------------------------------------------------
# Catalog fixture data
# ---------------------------------------------------------------------------

AUTHORS = [
    {"id": "a1", "name": "Northern Static", "tagline": "Lo-fi synths", "stats": {"followers": 10}},
    {"id": "a2", "name": "Mira Vale", "tagline": "Acoustic songs", "stats": {"followers": 5}},
]

TRACKS = [
    {"id": "t_pub", "title": "Frostline", "artistId": "a1", "genre": "Electronic", "plays": 10, "status": "published"},
    {"id": "t_pub2", "title": "Night Bus", "artistId": "a2", "genre": "Folk", "plays": 50, "status": "published"},
    {"id": "t_pending", "title": "Attic Demo", "artistId": "a1", "genre": "Electronic", "status": "pending"},
    {"id": "t_rejected", "title": "Bad Take", "artistId": "a2", "genre": "Folk", "status": "rejected"},
    {"id": "t_legacy", "title": "Old Draft", "artistId": "a2", "published": False, "plays": "n/a"},
]

PLAYLISTS = [
    {"id": "p1", "title": "Late Night", "trackIds": ["t_pub", "t_pending", "t_missing"]},
    {"id": "p2", "title": "Wide Open", "trackIds": ["t_pub2", "t_pending"]},
]


def write_catalog(data_dir: Path) -> None:
    for name, records in (("authors.json", AUTHORS), ("tracks.json", TRACKS), ("playlists.json", PLAYLISTS)):
        (data_dir / name).write_text(json.dumps(records), encoding="utf-8")


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class FakeProvider(OAuthProvider):
    """Stands in for a real provider: builds a fake authorize URL and returns
    a preset identity (or raises a preset error) from complete()."""

    authorize_url = "https://provider.test/authorize"

    def __init__(self, name: str = "google", identity: Optional[ExternalIdentity] = None) -> None:
        super().__init__("client-id", "client-secret")
        self.name = name
        self.label = name.title()
        self.identity = identity or ExternalIdentity(
            provider=name,
            provider_id="ext-1",
            email="oauth@example.com",
            display_name="OAuth Person",
            avatar="https://provider.test/a.png",
        )
        self.error: Optional[OAuthProviderError] = None
        self.calls: list[tuple[str, str]] = []

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        return f"{self.authorize_url}?state={state}&redirect_uri={redirect_uri}"

    def complete(self, code: str, redirect_uri: str) -> ExternalIdentity:
        self.calls.append((code, redirect_uri))
        if self.error is not None:
            raise self.error
        return self.identity


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


@dataclass
class Stores:
    users: UserStore
    likes: LikeStore
    catalog: CatalogStore
    data_dir: Path


def _make_test_stores(data_dir: Path) -> Stores:
    write_catalog(data_dir)
    users = UserStore(data_dir / "users.json")
    users.seed_demo_accounts()
    likes = LikeStore(data_dir / "user_likes.json")
    likes.seed()
    return Stores(users=users, likes=likes, catalog=CatalogStore(data_dir), data_dir=data_dir)


def _patch_lifespan(stores: Stores, providers: dict[str, OAuthProvider]):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores into app.state so routes see the tmp_path data
    directory rather than the configured one, and the fake OAuth providers
    instead of real ones.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = stores.users
        app.state.like_store = stores.likes
        app.state.catalog = stores.catalog
        app.state.oauth_providers = providers
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores(tmp_path: Path) -> Stores:
    return _make_test_stores(tmp_path)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider("google")


@pytest.fixture
def client(stores: Stores, fake_provider: FakeProvider) -> Generator[TestClient, None, None]:
    """TestClient over the full app (API, pages and static mount).

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /login), which are invisible once
    the client follows the redirect and returns the final 200 response.
    raise_server_exceptions=False lets the generic 500 handler answer instead
    of re-raising into the test.
    """
    app.router.lifespan_context = _patch_lifespan(stores, {fake_provider.name: fake_provider})
    limiter.reset()
    with TestClient(app, follow_redirects=False, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def login_as(client: TestClient):
    """Return a helper that logs the client in as a demo account (admin, artist or user)."""

    def _login(kind: str) -> None:
        resp = client.get(f"/login/demo/{kind}")
        assert resp.status_code == 302

    return _login
