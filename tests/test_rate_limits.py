"""
tests/test_rate_limits.py -- slowapi limits on the login, register and like routes.

Each test tightens or exhausts one limit and checks that the next request is
answered with 429 in the standard error envelope. The client fixture resets
the shared limiter, so counters never carry over between tests.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.config import get_settings


@pytest.fixture
def tight_login_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(get_settings(), "login_rate_limit", "2/minute")


def _assert_rate_limited(resp) -> None:
    assert resp.status_code == 429
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "rate_limited"
    assert "retry-after" in resp.headers


def test_login_post_is_rate_limited(client: TestClient, tight_login_limit) -> None:
    form = {"email": "admin@soundhub.local", "password": "wrong"}
    statuses = [client.post("/login", data=form).status_code for _ in range(2)]
    assert statuses == [302, 302]
    _assert_rate_limited(client.post("/login", data=form))


def test_register_post_is_rate_limited(client: TestClient, tight_login_limit) -> None:
    form = {"email": "bad", "password": "secret1", "password2": "secret1"}
    statuses = [client.post("/register", data=form).status_code for _ in range(2)]
    assert statuses == [302, 302]
    _assert_rate_limited(client.post("/register", data=form))


def test_login_form_page_is_not_limited(client: TestClient, tight_login_limit) -> None:
    for _ in range(5):
        assert client.get("/login").status_code == 200


def test_like_toggle_is_rate_limited(client: TestClient) -> None:
    for _ in range(120):
        assert client.post("/api/like/t_pub").status_code == 200
    _assert_rate_limited(client.post("/api/like/t_pub"))
