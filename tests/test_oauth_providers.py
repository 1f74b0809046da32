"""
tests/test_oauth_providers.py -- Unit tests for the adapters in auth/oauth.py.

The OAuth2Session factory is replaced with a MagicMock, so these tests check
exactly which URLs, parameters and headers each adapter would send and how
each provider's profile shape is normalized, without any network access.

Covers:
  - Google: authorize params, token exchange, verified-email rule [H1]
  - Yandex: "OAuth <token>" header, avatar URL
  - VK: GET token exchange, users.get profile, name fallbacks
  - provider errors surface as OAuthProviderError with the payload
  - build_providers(): only fully configured providers are enabled
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests
from authlib.integrations.requests_client import OAuthError

from auth.oauth import (
    VK_API_VERSION,
    GoogleProvider,
    VKProvider,
    YandexProvider,
    build_providers,
    get_enabled_providers,
)
from core.config import Settings
from core.errors import OAuthProviderError

CALLBACK = "http://localhost:3000/auth/x/callback"


def _response(payload, ok: bool = True) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.ok = ok
    resp.json.return_value = payload
    resp.text = str(payload)
    return resp


def _provider(cls):
    session = MagicMock()
    factory = MagicMock(return_value=session)
    return cls("client-id", "client-secret", session_factory=factory), session, factory


class TestGoogle:
    def test_authorization_url(self) -> None:
        provider, session, factory = _provider(GoogleProvider)
        session.create_authorization_url.return_value = ("https://accounts.google.com/o/oauth2/v2/auth?x", "st")

        url = provider.authorization_url(CALLBACK, "st")

        assert url == "https://accounts.google.com/o/oauth2/v2/auth?x"
        factory.assert_called_once_with(
            client_id="client-id",
            client_secret="client-secret",
            scope="openid email profile",
            redirect_uri=CALLBACK,
            token=None,
            token_endpoint_auth_method="client_secret_post",
        )
        session.create_authorization_url.assert_called_once_with(
            "https://accounts.google.com/o/oauth2/v2/auth", state="st", prompt="select_account"
        )

    def test_complete_with_verified_email(self) -> None:
        provider, session, _ = _provider(GoogleProvider)
        session.fetch_token.return_value = {"access_token": "at", "token_type": "Bearer"}
        session.get.return_value = _response(
            {"sub": "123", "email": "g@example.com", "email_verified": True, "name": "G User", "picture": "p.png"}
        )

        identity = provider.complete("code", CALLBACK)

        session.fetch_token.assert_called_once_with(
            "https://oauth2.googleapis.com/token", code="code", grant_type="authorization_code"
        )
        session.get.assert_called_once_with("https://openidconnect.googleapis.com/v1/userinfo")
        assert identity.provider == "google"
        assert identity.provider_id == "123"
        assert identity.email == "g@example.com"
        assert identity.display_name == "G User"
        assert identity.avatar == "p.png"

    def test_unverified_email_is_dropped(self) -> None:
        provider, session, _ = _provider(GoogleProvider)
        session.get.return_value = _response({"sub": "123", "email": "g@example.com", "email_verified": False})
        identity = provider.fetch_identity({"access_token": "at", "token_type": "Bearer"})
        assert identity.email is None
        assert identity.display_name == "g@example.com"

    def test_token_error_becomes_provider_error(self) -> None:
        provider, session, _ = _provider(GoogleProvider)
        session.fetch_token.side_effect = OAuthError(error="invalid_grant", description="Bad code")
        with pytest.raises(OAuthProviderError) as exc_info:
            provider.exchange_code("bad", CALLBACK)
        assert exc_info.value.stage == "token"
        assert exc_info.value.payload == {"error": "invalid_grant", "error_description": "Bad code"}

    def test_network_error_becomes_provider_error(self) -> None:
        provider, session, _ = _provider(GoogleProvider)
        session.fetch_token.side_effect = requests.ConnectionError("down")
        with pytest.raises(OAuthProviderError):
            provider.exchange_code("code", CALLBACK)

    def test_userinfo_error_carries_payload(self) -> None:
        provider, session, _ = _provider(GoogleProvider)
        session.get.return_value = _response({"error": "invalid_token"}, ok=False)
        with pytest.raises(OAuthProviderError) as exc_info:
            provider.fetch_identity({"access_token": "at", "token_type": "Bearer"})
        assert exc_info.value.payload == {"error": "invalid_token"}


class TestYandex:
    def test_profile_uses_oauth_header(self) -> None:
        provider, session, _ = _provider(YandexProvider)
        session.get.return_value = _response(
            {"id": "555", "default_email": "y@yandex.ru", "display_name": "Ya", "default_avatar_id": "av1"}
        )

        identity = provider.fetch_identity({"access_token": "yt"})

        session.get.assert_called_once_with(
            "https://login.yandex.ru/info",
            params={"format": "json"},
            headers={"Authorization": "OAuth yt"},
            withhold_token=True,
        )
        assert identity.provider_id == "555"
        assert identity.email == "y@yandex.ru"
        assert identity.avatar == "https://avatars.yandex.net/get-yapic/av1/islands-200"

    def test_name_falls_back_to_real_name_then_email(self) -> None:
        provider, session, _ = _provider(YandexProvider)
        session.get.return_value = _response({"id": "1", "real_name": "Real", "default_email": "e@ya.ru"})
        assert provider.fetch_identity({"access_token": "t"}).display_name == "Real"
        session.get.return_value = _response({"id": "1", "default_email": "e@ya.ru"})
        identity = provider.fetch_identity({"access_token": "t"})
        assert identity.display_name == "e@ya.ru"
        assert identity.avatar is None


class TestVK:
    def test_complete(self) -> None:
        provider, session, _ = _provider(VKProvider)
        session.get.side_effect = [
            _response({"access_token": "vt", "user_id": 42, "email": "v@vk.com"}),
            _response({"response": [{"first_name": "Ivan", "last_name": "Petrov", "photo_200": "ph.jpg"}]}),
        ]

        identity = provider.complete("code", CALLBACK)

        token_call, profile_call = session.get.call_args_list
        assert token_call.args == ("https://oauth.vk.com/access_token",)
        assert token_call.kwargs["params"]["code"] == "code"
        assert token_call.kwargs["params"]["redirect_uri"] == CALLBACK
        assert profile_call.args == ("https://api.vk.com/method/users.get",)
        assert profile_call.kwargs["params"]["v"] == VK_API_VERSION
        assert profile_call.kwargs["params"]["user_ids"] == "42"
        assert identity.provider_id == "42"
        assert identity.email == "v@vk.com"
        assert identity.display_name == "Ivan Petrov"
        assert identity.avatar == "ph.jpg"

    def test_name_fallbacks(self) -> None:
        provider, session, _ = _provider(VKProvider)
        session.get.return_value = _response({"response": [{}]})
        assert provider.fetch_identity({"access_token": "t", "user_id": 1, "email": "e@vk.com"}).display_name == (
            "e@vk.com"
        )
        assert provider.fetch_identity({"access_token": "t", "user_id": 1}).display_name == "VK User"

    def test_token_error(self) -> None:
        provider, session, _ = _provider(VKProvider)
        session.get.return_value = _response({"error": "invalid_grant"}, ok=False)
        with pytest.raises(OAuthProviderError) as exc_info:
            provider.exchange_code("bad", CALLBACK)
        assert exc_info.value.payload == {"error": "invalid_grant"}

    def test_api_error_in_profile(self) -> None:
        provider, session, _ = _provider(VKProvider)
        session.get.return_value = _response({"error": {"error_code": 5}})
        with pytest.raises(OAuthProviderError):
            provider.fetch_identity({"access_token": "t", "user_id": 1})


def test_build_providers_requires_id_and_secret() -> None:
    settings = Settings(
        debug=True,
        google_client_id="g",
        google_client_secret="gs",
        yandex_client_id="y",
        yandex_client_secret="",
        vk_client_id="",
        vk_client_secret="",
    )
    providers = build_providers(settings, session_factory=MagicMock())
    assert list(providers) == ["google"]
    assert get_enabled_providers(providers) == [{"name": "google", "label": "Google"}]
