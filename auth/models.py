"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; auth/store.py maps these to and from the persisted JSON records.

Layer rule: no imports from api/, web/, catalog/, likes/, or storage/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

LOCAL_PROVIDER = "local"


@dataclass
class OAuthLink:
    """One external identity attached to a User.

    A single account can be reachable through several providers plus an
    optional local password; each provider gets one OAuthLink.
    """

    provider_id: str
    email: str | None = None
    avatar: str | None = None
    linked_at: str | None = None
    last_login_at: str | None = None


@dataclass
class User:
    """An account on the site.

    provider is the provider the account was created with ("local", "google",
    "yandex", "vk"). password_hash is None for OAuth-only accounts. artist_id
    ties an artist account to the author whose tracks it may upload.
    """

    id: str
    provider: str
    display_name: str
    role: str  # "admin", "artist", "user"
    email: str | None = None
    provider_id: str | None = None
    artist_id: str | None = None
    password_hash: str | None = None  # "salt:hash", None = OAuth-only user
    avatar: str | None = None
    oauth_links: dict[str, OAuthLink] = field(default_factory=dict)
    created_at: str | None = None


@dataclass(frozen=True)
class ExternalIdentity:
    """What every OAuth adapter hands to the identity store.

    Provider-specific profile shapes stop at the adapter boundary; nothing
    downstream branches on the provider name.
    """

    provider: str
    provider_id: str
    email: str | None = None
    display_name: str | None = None
    avatar: str | None = None
