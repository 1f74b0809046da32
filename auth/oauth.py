"""
auth/oauth.py -- Authlib-based OAuth 2.0 adapters for Google, Yandex and VK.

Each adapter does three things for the web layer:
  1. authorization_url() -- build the provider redirect for a given state.
  2. exchange_code()     -- server-to-server code -> token exchange.
  3. fetch_identity()    -- call the profile endpoint and normalize it into an
                            ExternalIdentity.

State handling is NOT delegated to authlib's Starlette client: the session
layout (oauthStates / oauthNext keyed by provider) is owned by
auth/session.SessionContext so the callback can reject a mismatched state
before any network call and without consuming anything.

HTTP goes through authlib's requests integration (OAuth2Session is a
requests.Session). A session_factory can be injected so tests never touch the
network. There is no retry and no explicit timeout beyond requests' defaults;
any provider failure surfaces as OAuthProviderError.

Supported providers:
  google -- OIDC userinfo endpoint; email only trusted when email_verified [H1].
  yandex -- login.yandex.ru/info with the "OAuth <token>" header scheme.
  vk     -- token endpoint is a GET and returns user_id/email alongside the
            token; profile comes from the users.get API method.

Layer rule: no imports from api/, web/, catalog/, likes/, or storage/.
Import from core/ is allowed -- core/ is the kernel layer.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from typing import Any, Optional

import requests
from authlib.integrations.requests_client import OAuth2Session, OAuthError

from auth.models import ExternalIdentity
from core.config import Settings
from core.errors import OAuthProviderError

logger = logging.getLogger("soundhub.auth.oauth")

SessionFactory = Callable[..., OAuth2Session]

VK_API_VERSION = "5.131"


def new_state() -> str:
    """Random anti-forgery token for one authorization round trip."""
    return secrets.token_hex(16)


def _json_or_text(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------


class OAuthProvider:
    """Authorization-code flow shared by every provider.

    Subclasses set the endpoint attributes and implement fetch_identity().
    """

    name: str = ""
    label: str = ""
    authorize_url: str = ""
    token_url: str = ""
    scope: Optional[str] = None
    authorize_params: dict[str, str] = {}

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        session_factory: SessionFactory = OAuth2Session,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self._session_factory = session_factory

    def _session(self, redirect_uri: Optional[str] = None, token: Optional[dict] = None) -> OAuth2Session:
        return self._session_factory(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=self.scope,
            redirect_uri=redirect_uri,
            token=token,
            token_endpoint_auth_method="client_secret_post",  # noqa: S106 -- auth method name, not a secret
        )

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        """Return the provider URL the browser should be sent to."""
        session = self._session(redirect_uri=redirect_uri)
        url, _state = session.create_authorization_url(self.authorize_url, state=state, **self.authorize_params)
        return url

    def exchange_code(self, code: str, redirect_uri: str) -> dict:
        """Trade an authorization code for a token dict. Raises OAuthProviderError."""
        session = self._session(redirect_uri=redirect_uri)
        try:
            token = session.fetch_token(self.token_url, code=code, grant_type="authorization_code")
        except OAuthError as exc:
            raise OAuthProviderError(
                self.name, "token", {"error": exc.error, "error_description": exc.description}
            ) from exc
        except requests.RequestException as exc:
            raise OAuthProviderError(self.name, "token", str(exc)) from exc
        if not token or not token.get("access_token"):
            raise OAuthProviderError(self.name, "token", dict(token or {}))
        return dict(token)

    def fetch_identity(self, token: dict) -> ExternalIdentity:
        raise NotImplementedError

    def complete(self, code: str, redirect_uri: str) -> ExternalIdentity:
        """Run the whole server-side half of the callback."""
        token = self.exchange_code(code, redirect_uri)
        return self.fetch_identity(token)

    def _get_profile(self, session: OAuth2Session, url: str, **kwargs) -> Any:
        try:
            resp = session.get(url, **kwargs)
        except requests.RequestException as exc:
            raise OAuthProviderError(self.name, "userinfo", str(exc)) from exc
        payload = _json_or_text(resp)
        if not resp.ok or not isinstance(payload, dict):
            raise OAuthProviderError(self.name, "userinfo", payload)
        return payload


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class GoogleProvider(OAuthProvider):
    name = "google"
    label = "Google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    scope = "openid email profile"
    authorize_params = {"prompt": "select_account"}

    def fetch_identity(self, token: dict) -> ExternalIdentity:
        """Normalize the OIDC userinfo document.

        [H1] The email claim is only used when email_verified is true. An
        unverified address could belong to someone else, and the identity store
        links accounts by email.
        """
        me = self._get_profile(self._session(token=token), self.userinfo_url)
        if not me.get("sub"):
            raise OAuthProviderError(self.name, "userinfo", me)
        email = me.get("email") if me.get("email_verified") else None
        return ExternalIdentity(
            provider=self.name,
            provider_id=str(me["sub"]),
            email=email,
            display_name=me.get("name") or me.get("email"),
            avatar=me.get("picture"),
        )


class YandexProvider(OAuthProvider):
    name = "yandex"
    label = "Yandex"
    authorize_url = "https://oauth.yandex.ru/authorize"
    token_url = "https://oauth.yandex.ru/token"  # noqa: S105 -- URL, not a password
    userinfo_url = "https://login.yandex.ru/info"
    avatar_url = "https://avatars.yandex.net/get-yapic/{avatar_id}/islands-200"

    def fetch_identity(self, token: dict) -> ExternalIdentity:
        # Yandex wants "OAuth <token>", not "Bearer <token>".
        me = self._get_profile(
            self._session(),
            self.userinfo_url,
            params={"format": "json"},
            headers={"Authorization": f"OAuth {token['access_token']}"},
            withhold_token=True,
        )
        if not me.get("id"):
            raise OAuthProviderError(self.name, "userinfo", me)
        avatar_id = me.get("default_avatar_id")
        return ExternalIdentity(
            provider=self.name,
            provider_id=str(me["id"]),
            email=me.get("default_email"),
            display_name=me.get("display_name") or me.get("real_name") or me.get("default_email"),
            avatar=self.avatar_url.format(avatar_id=avatar_id) if avatar_id else None,
        )


class VKProvider(OAuthProvider):
    name = "vk"
    label = "VK"
    authorize_url = "https://oauth.vk.com/authorize"
    token_url = "https://oauth.vk.com/access_token"  # noqa: S105 -- URL, not a password
    users_get_url = "https://api.vk.com/method/users.get"
    scope = "email"
    authorize_params = {"display": "page", "v": VK_API_VERSION}

    def exchange_code(self, code: str, redirect_uri: str) -> dict:
        """VK's token endpoint is a GET with everything in the query string.

        The response carries user_id and (if granted) email next to the token,
        so it is returned as-is for fetch_identity().
        """
        session = self._session(redirect_uri=redirect_uri)
        try:
            resp = session.get(
                self.token_url,
                params={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": redirect_uri,
                    "code": code,
                },
                withhold_token=True,
            )
        except requests.RequestException as exc:
            raise OAuthProviderError(self.name, "token", str(exc)) from exc
        payload = _json_or_text(resp)
        if not resp.ok or not isinstance(payload, dict) or payload.get("error") or not payload.get("access_token"):
            raise OAuthProviderError(self.name, "token", payload)
        return payload

    def fetch_identity(self, token: dict) -> ExternalIdentity:
        user_id = token.get("user_id")
        email = token.get("email") or None
        payload = self._get_profile(
            self._session(),
            self.users_get_url,
            params={
                "user_ids": str(user_id),
                "fields": "photo_200",
                "access_token": token["access_token"],
                "v": VK_API_VERSION,
            },
            withhold_token=True,
        )
        if payload.get("error") or user_id is None:
            raise OAuthProviderError(self.name, "profile", payload)
        profiles = payload.get("response") or [{}]
        p = profiles[0] or {}
        display_name = " ".join(x for x in (p.get("first_name"), p.get("last_name")) if x) or email or "VK User"
        return ExternalIdentity(
            provider=self.name,
            provider_id=str(user_id),
            email=email,
            display_name=display_name,
            avatar=p.get("photo_200") or None,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_providers(settings: Settings, session_factory: SessionFactory = OAuth2Session) -> dict[str, OAuthProvider]:
    """Instantiate every provider whose client id AND secret are configured.

    The returned dict is stored on app.state.oauth_providers; routes look
    providers up by name, so an unconfigured provider is simply absent.
    """
    configured = [
        (GoogleProvider, settings.google_client_id, settings.google_client_secret),
        (YandexProvider, settings.yandex_client_id, settings.yandex_client_secret),
        (VKProvider, settings.vk_client_id, settings.vk_client_secret),
    ]
    providers: dict[str, OAuthProvider] = {}
    for cls, client_id, client_secret in configured:
        if client_id and client_secret:
            providers[cls.name] = cls(client_id, client_secret, session_factory=session_factory)
            logger.info("%s OAuth provider registered", cls.label)
    return providers


def get_enabled_providers(providers: dict[str, OAuthProvider]) -> list[dict]:
    """Return [{"name", "label"}] for the login/register templates."""
    return [{"name": p.name, "label": p.label} for p in providers.values()]
