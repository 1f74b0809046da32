"""
tests/test_auth_redirect.py -- Integration tests for the role gate and login redirects.

These tests exercise require_role() end-to-end through the real ASGI stack
using the client fixture (follow_redirects=False). We assert on redirect
Location headers directly -- following the redirect would hide them.

Coverage:
  - Anonymous requests to gated pages -> 302 /login?next={path}
  - Wrong role -> 403 with the structured error envelope
  - Right role -> 200
  - Local login / registration redirect to the sanitized next
  - Security: next= is always a relative path (open-redirect prevention)
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient


def _next_param(location: str) -> str:
    values = parse_qs(urlparse(location).query).get("next", [])
    assert len(values) == 1, f"Expected exactly one 'next' param, got: {values}"
    return values[0]


class TestRoleGate:
    @pytest.mark.parametrize("path", ["/admin", "/artist/upload"])
    def test_anonymous_redirects_to_login(self, client: TestClient, path: str) -> None:
        resp = client.get(path)
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("/login")
        assert _next_param(location) == path

    def test_anonymous_post_redirects_too(self, client: TestClient) -> None:
        resp = client.post("/admin/tracks/t_pending/approve")
        assert resp.status_code == 302
        assert _next_param(resp.headers["location"]) == "/admin/tracks/t_pending/approve"

    def test_wrong_role_is_403(self, client: TestClient, login_as) -> None:
        login_as("user")
        resp = client.get("/admin")
        assert resp.status_code == 403
        assert resp.json() == {
            "ok": False,
            "error": {"code": "forbidden", "message": "Insufficient permissions."},
        }

    def test_artist_cannot_use_admin_actions(self, client: TestClient, stores, login_as) -> None:
        """Owning the track is not enough: approve/reject/delete are admin routes."""
        login_as("artist")
        resp = client.post("/admin/tracks/t_pending/approve")
        assert resp.status_code == 403
        assert stores.catalog.get_track("t_pending").status == "pending"

    def test_admin_passes(self, client: TestClient, login_as) -> None:
        login_as("admin")
        assert client.get("/admin").status_code == 200

    def test_artist_passes(self, client: TestClient, login_as) -> None:
        login_as("artist")
        assert client.get("/artist/upload").status_code == 200


class TestLoginRedirects:
    def test_login_success_goes_to_next(self, client: TestClient) -> None:
        resp = client.post(
            "/login",
            data={"email": "admin@soundhub.local", "password": "admin123", "next": "/admin"},
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == "/admin"
        assert resp.headers["cache-control"] == "no-store"
        assert client.get("/admin").status_code == 200

    def test_login_failure_uses_error_code(self, client: TestClient) -> None:
        resp = client.post("/login", data={"email": "admin@soundhub.local", "password": "wrong", "next": "/admin"})
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert parse_qs(urlparse(location).query)["error"] == ["bad_credentials"]
        assert _next_param(location) == "/admin"

    def test_login_page_shows_whitelisted_message_only(self, client: TestClient) -> None:
        """Unknown error codes render nothing; raw query text never reaches the page."""
        page = client.get("/login", params={"error": "<script>alert(1)</script>"}).text
        assert "<script>alert(1)</script>" not in page
        page = client.get("/login", params={"error": "bad_credentials"}).text
        assert "Invalid email or password." in page

    @pytest.mark.parametrize("evil", ["https://attacker.com", "//attacker.com", "/\\attacker.com"])
    def test_offsite_next_is_replaced(self, client: TestClient, evil: str) -> None:
        resp = client.post("/login", data={"email": "user@soundhub.local", "password": "user123", "next": evil})
        assert resp.headers["location"] == "/"

    def test_demo_login_unknown_kind(self, client: TestClient) -> None:
        resp = client.get("/login/demo/root")
        assert resp.headers["location"] == "/login?error=unknown_demo"

    def test_logged_in_user_skips_login_form(self, client: TestClient, login_as) -> None:
        login_as("user")
        resp = client.get("/login", params={"next": "/library"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/library"
