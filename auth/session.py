"""
auth/session.py -- Typed view over the per-client session bag.

Starlette's SessionMiddleware gives every request a plain dict (request.session)
that is signed into a cookie on the way out. SessionContext wraps that dict so
core operations receive an explicit value instead of reaching into the request.

Keys in the bag:
  userId       -- id of the logged-in user, absent for guests
  guestLikes   -- list of track ids liked before logging in
  oauthStates  -- {provider: anti-forgery state} for in-flight OAuth logins
  oauthNext    -- {provider: sanitized post-login path}

Layer rule: no imports from api/, web/, catalog/, likes/, or storage/.
"""

from __future__ import annotations

import hmac
from collections.abc import MutableMapping
from typing import Any, Optional

_USER_ID = "userId"
_GUEST_LIKES = "guestLikes"
_OAUTH_STATES = "oauthStates"
_OAUTH_NEXT = "oauthNext"


def sanitize_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Prevents open redirect attacks where an attacker crafts a URL like:
      /login?next=https://attacker.com  or  /login?next=//attacker.com

    Anything that does not start with a single "/" becomes "/". Backslashes
    are rejected too: browsers treat "/\\evil.com" like "//evil.com".
    """
    n = str(next_url or "/")
    if not n.startswith("/") or n.startswith("//") or "\\" in n:
        return "/"
    return n


class SessionContext:
    def __init__(self, bag: MutableMapping[str, Any]) -> None:
        self._bag = bag

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self._bag.get(_USER_ID)

    @user_id.setter
    def user_id(self, value: Optional[str]) -> None:
        if value is None:
            self._bag.pop(_USER_ID, None)
        else:
            self._bag[_USER_ID] = value

    def clear(self) -> None:
        self._bag.clear()

    # ------------------------------------------------------------------
    # Guest likes
    # ------------------------------------------------------------------

    @property
    def guest_likes(self) -> list[str]:
        likes = self._bag.get(_GUEST_LIKES)
        return list(likes) if isinstance(likes, list) else []

    @guest_likes.setter
    def guest_likes(self, likes: list[str]) -> None:
        self._bag[_GUEST_LIKES] = list(likes)

    # ------------------------------------------------------------------
    # OAuth transient state
    # ------------------------------------------------------------------

    def begin_oauth(self, provider: str, state: str, next_url: Optional[str]) -> None:
        """Record the state and return path for a login about to leave the site."""
        states = dict(self._bag.get(_OAUTH_STATES) or {})
        states[provider] = state
        self._bag[_OAUTH_STATES] = states

        nexts = dict(self._bag.get(_OAUTH_NEXT) or {})
        nexts[provider] = sanitize_next(next_url)
        self._bag[_OAUTH_NEXT] = nexts

    def check_oauth_state(self, provider: str, state: Optional[str]) -> bool:
        """Return True if state equals the one issued for provider. Never mutates."""
        expected = (self._bag.get(_OAUTH_STATES) or {}).get(provider)
        if not expected or not state:
            return False
        return hmac.compare_digest(str(expected), str(state))

    def finish_oauth(self, provider: str) -> str:
        """Drop the provider's state and return its sanitized next path ("/" if none)."""
        states = dict(self._bag.get(_OAUTH_STATES) or {})
        states.pop(provider, None)
        self._bag[_OAUTH_STATES] = states

        nexts = dict(self._bag.get(_OAUTH_NEXT) or {})
        next_url = nexts.pop(provider, None)
        self._bag[_OAUTH_NEXT] = nexts
        return sanitize_next(next_url)
