"""
likes/service.py -- Like operations over "whichever store applies".

A logged-in visitor's likes live in LikeStore; a guest's live in their
session. These functions pick the right one so the API route and the page
routes never branch on it themselves.

No print statements, no HTTP. NotFound / Forbidden are raised for the caller
(api/main.py maps them to 404 / 403).
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import User
from auth.session import SessionContext
from catalog.store import CatalogStore
from catalog.visibility import Requester, is_visible
from core.errors import Forbidden, NotFound
from likes.store import LikeStore

logger = logging.getLogger("soundhub.likes")


def get_effective_likes(session: SessionContext, user: Optional[User], likes: LikeStore) -> list[str]:
    """The persisted list for a logged-in user, otherwise the session's guest list."""
    if user is not None:
        return likes.get(user.id)
    return session.guest_likes


def toggle_like(
    track_id: str,
    session: SessionContext,
    user: Optional[User],
    catalog: CatalogStore,
    likes: LikeStore,
) -> tuple[bool, list[str]]:
    """Flip the like on track_id for the current visitor. Returns (liked, likes).

    Existence and visibility are both checked before anything is written: a
    guest cannot like (and thereby probe) a track that is still in moderation.
    """
    track = catalog.get_track(track_id)
    if track is None:
        raise NotFound("Track not found")
    if not is_visible(track, Requester.for_user(user)):
        raise Forbidden("Track is not available")

    if user is not None:
        return likes.toggle(user.id, track_id)

    guest = session.guest_likes
    if track_id in guest:
        guest = [t for t in guest if t != track_id]
        liked = False
    else:
        guest.append(track_id)
        liked = True
    session.guest_likes = guest
    return liked, guest


def merge_guest_into_user(session: SessionContext, user_id: str, likes: LikeStore) -> None:
    """Fold the session's guest likes into user_id's persisted likes, then clear them.

    Clearing makes a second call a no-op, so an old browser session cannot
    replay its guest likes onto whichever account logs in next.
    """
    guest = session.guest_likes
    if not guest:
        return
    likes.add_many(user_id, guest)
    session.guest_likes = []
    logger.info("Merged %d guest likes into %s", len(guest), user_id)
