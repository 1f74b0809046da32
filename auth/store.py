"""
auth/store.py -- JSON-backed persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository;
_record_to_user / _user_to_record are the mappers between the persisted
camelCase records in users.json and the User dataclass. Route code never
touches the JSON document directly.

Identity invariants (enforced here, not by the file format):
  - at most one User per (provider, providerId) pair, whether the pair is the
    account's primary provider or one of its oauthLinks;
  - at most one User per normalized email across all providers for local
    registration (register_local refuses any existing email).

Layer rule: no imports from api/, web/, catalog/, or likes/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path

from auth.models import LOCAL_PROVIDER, ExternalIdentity, OAuthLink, User
from auth.passwords import hash_password
from core.errors import DuplicateEmail, InvalidInput
from storage.store import JsonDocument

logger = logging.getLogger("soundhub.auth.store")

MIN_PASSWORD_LENGTH = 6

# Demo accounts written on first start (see seed_demo_accounts).
_DEMO_ACCOUNTS: list[dict] = [
    {
        "id": "u_admin",
        "email": "admin@soundhub.local",
        "displayName": "Admin",
        "role": "admin",
        "password": "admin123",
    },
    {
        "id": "u_artist",
        "email": "artist@soundhub.local",
        "displayName": "Artist",
        "role": "artist",
        "artistId": "a1",
        "password": "artist123",
    },
    {
        "id": "u_user",
        "email": "user@soundhub.local",
        "displayName": "User",
        "role": "user",
        "password": "user123",
    },
]

DEMO_ACCOUNT_IDS: dict[str, str] = {"admin": "u_admin", "artist": "u_artist", "user": "u_user"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_user_id() -> str:
    return f"u_{secrets.token_hex(8)}"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_local_credentials(email: str | None, password: str | None) -> str:
    """Return the normalized email, or raise InvalidInput (email checked before password)."""
    e = normalize_email(email)
    if not e or "@" not in e or len(e) < 5:
        raise InvalidInput("bad_email", "Enter a valid email address.")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput("short_password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return e


def _matches_identity(user: User, provider: str, provider_id: str) -> bool:
    if user.provider == provider and str(user.provider_id) == provider_id:
        return True
    link = user.oauth_links.get(provider)
    return link is not None and str(link.provider_id) == provider_id


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(Path("data/users.json"))
        store.seed_demo_accounts()
        user = store.register_local("bob@x.com", "secret1")
        user = store.upsert_oauth_user(ExternalIdentity("google", "123", "bob@x.com"))
    """

    def __init__(self, path: Path) -> None:
        self._doc = JsonDocument(path, default=list)

    def seed_demo_accounts(self) -> bool:
        """Write the three demo accounts if users.json does not exist yet.

        Returns True if the file was created. An existing file is never touched,
        even if it is empty.
        """
        if self._doc.exists():
            return False
        users = [
            User(
                id=a["id"],
                provider=LOCAL_PROVIDER,
                email=a["email"],
                display_name=a["displayName"],
                role=a["role"],
                artist_id=a.get("artistId"),
                password_hash=hash_password(a["password"]),
                created_at=_now_iso(),
            )
            for a in _DEMO_ACCOUNTS
        ]
        self._doc.write([_user_to_record(u) for u in users])
        logger.info("Seeded %d demo accounts", len(users))
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return [_record_to_user(r) for r in self._doc.read()]

    def get_by_id(self, user_id: str | None) -> User | None:
        """Look up a user by id. Returns None if not found (e.g. stale session)."""
        if not user_id:
            return None
        return next((u for u in self.list_users() if u.id == user_id), None)

    def get_local_by_email(self, email: str | None) -> User | None:
        """Look up a local-provider user by normalized email."""
        e = normalize_email(email)
        if not e:
            return None
        return next(
            (u for u in self.list_users() if u.provider == LOCAL_PROVIDER and normalize_email(u.email) == e),
            None,
        )

    def get_by_oauth(self, provider: str, provider_id: str) -> User | None:
        pid = str(provider_id)
        return next((u for u in self.list_users() if _matches_identity(u, provider, pid)), None)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_local(self, email: str, password: str, display_name: str | None = None) -> User:
        """Create a local account.

        Raises InvalidInput for a malformed email or a short password, and
        DuplicateEmail when any account (any provider) already uses the email.
        Password confirmation is the caller's job.
        """
        e = validate_local_credentials(email, password)

        name = (display_name or "").strip() or e.split("@")[0] or "User"
        with self._doc.transaction() as records:
            users = [_record_to_user(r) for r in records]
            if any(normalize_email(u.email) == e for u in users):
                raise DuplicateEmail(e)
            user = User(
                id=_new_user_id(),
                provider=LOCAL_PROVIDER,
                email=e,
                display_name=name,
                role="user",
                password_hash=hash_password(password),
                created_at=_now_iso(),
            )
            records.append(_user_to_record(user))

        logger.info("Registered local account %s", user.id)
        return user

    def upsert_oauth_user(self, identity: ExternalIdentity) -> User:
        """Resolve an external identity to an account, creating one if needed.

        Resolution order:
          1. Direct match on (provider, providerId), as primary provider or
             inside oauthLinks. Top-level email/displayName/avatar are
             overwritten by any non-empty incoming value.
          2. Match on normalized email (any provider). A fresh link record is
             attached; top-level fields are only filled where empty.
          3. New account with role "user" and no local password.

        The overwrite-vs-fill asymmetry between 1 and 2 is deliberate: a
        returning OAuth user gets their provider profile refreshed, while linking
        a provider onto an existing account never clobbers what that account
        already had.
        """
        provider = identity.provider
        pid = str(identity.provider_id)
        email = identity.email
        avatar = identity.avatar
        now = _now_iso()

        with self._doc.transaction() as records:
            users = [_record_to_user(r) for r in records]

            # 1) Existing account reachable through this provider identity
            existing = next((u for u in users if _matches_identity(u, provider, pid)), None)
            if existing is not None:
                existing.email = email or existing.email
                existing.display_name = identity.display_name or existing.display_name
                existing.avatar = avatar or existing.avatar

                link = existing.oauth_links.get(provider) or OAuthLink(provider_id=pid)
                link.provider_id = pid
                if email:
                    link.email = email
                if avatar:
                    link.avatar = avatar
                link.last_login_at = now
                link.linked_at = link.linked_at or now
                existing.oauth_links[provider] = link

                records[:] = [_user_to_record(u) for u in users]
                logger.info("OAuth login via %s for %s", provider, existing.id)
                return existing

            # 2) Link onto an account that already uses this email
            norm_email = normalize_email(email)
            by_email = next((u for u in users if norm_email and normalize_email(u.email) == norm_email), None)
            if by_email is not None:
                by_email.oauth_links[provider] = OAuthLink(
                    provider_id=pid,
                    email=email or by_email.email,
                    avatar=avatar or by_email.avatar,
                    linked_at=now,
                    last_login_at=now,
                )
                by_email.email = by_email.email or email
                by_email.display_name = by_email.display_name or identity.display_name or by_email.display_name
                by_email.avatar = by_email.avatar or avatar

                records[:] = [_user_to_record(u) for u in users]
                logger.info("Linked %s identity to existing account %s", provider, by_email.id)
                return by_email

            # 3) Brand new account
            user = User(
                id=_new_user_id(),
                provider=provider,
                provider_id=pid,
                email=email or None,
                display_name=identity.display_name or "User",
                avatar=avatar or None,
                role="user",
                password_hash=None,
                oauth_links={
                    provider: OAuthLink(
                        provider_id=pid,
                        email=email or None,
                        avatar=avatar or None,
                        linked_at=now,
                        last_login_at=now,
                    )
                },
                created_at=now,
            )
            records.append(_user_to_record(user))
            logger.info("Created account %s from %s identity", user.id, provider)
            return user


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _record_to_link(record: dict) -> OAuthLink:
    return OAuthLink(
        provider_id=str(record.get("providerId", "")),
        email=record.get("email"),
        avatar=record.get("avatar"),
        linked_at=record.get("linkedAt"),
        last_login_at=record.get("lastLoginAt"),
    )


def _link_to_record(link: OAuthLink) -> dict:
    return {
        "providerId": link.provider_id,
        "email": link.email,
        "avatar": link.avatar,
        "linkedAt": link.linked_at,
        "lastLoginAt": link.last_login_at,
    }


def _record_to_user(record: dict) -> User:
    provider_id = record.get("providerId")
    return User(
        id=record["id"],
        provider=record.get("provider") or LOCAL_PROVIDER,
        email=record.get("email"),
        display_name=record.get("displayName") or "User",
        role=record.get("role") or "user",
        provider_id=str(provider_id) if provider_id is not None else None,
        artist_id=record.get("artistId"),
        password_hash=record.get("passwordHash"),
        avatar=record.get("avatar"),
        oauth_links={p: _record_to_link(link) for p, link in (record.get("oauthLinks") or {}).items()},
        created_at=record.get("createdAt"),
    )


def _user_to_record(user: User) -> dict:
    record: dict = {
        "id": user.id,
        "provider": user.provider,
        "email": user.email,
        "displayName": user.display_name,
        "role": user.role,
        "passwordHash": user.password_hash,
    }
    # Optional keys are omitted rather than written as null.
    if user.provider_id is not None:
        record["providerId"] = user.provider_id
    if user.artist_id is not None:
        record["artistId"] = user.artist_id
    if user.avatar is not None:
        record["avatar"] = user.avatar
    if user.oauth_links:
        record["oauthLinks"] = {p: _link_to_record(link) for p, link in user.oauth_links.items()}
    if user.created_at is not None:
        record["createdAt"] = user.created_at
    return record
