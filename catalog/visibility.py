"""
catalog/visibility.py -- Who may see and who may moderate a track.

Every route derives a Requester from the current user once and asks these two
pure functions; no handler compares role strings on its own.

  published            -> visible to everyone
  pending / rejected   -> visible to admins and to the owning artist only
  moderation rights    -> admins and the owning artist (only admin routes
                          actually expose approve/reject/delete)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from catalog.models import STATUS_PUBLISHED, Track

if TYPE_CHECKING:
    from auth.models import User


class Role(str, Enum):
    admin = "admin"
    artist = "artist"
    user = "user"
    guest = "guest"


@dataclass(frozen=True)
class Requester:
    role: Role
    artist_id: Optional[str] = None  # only meaningful for Role.artist

    @classmethod
    def guest(cls) -> Requester:
        return cls(Role.guest)

    @classmethod
    def for_user(cls, user: Optional[User]) -> Requester:
        """Map an account (or None) onto the closed set of requester kinds.

        An artist account without an artist_id owns nothing, so it gets the same
        rights as a plain user.
        """
        if user is None:
            return cls.guest()
        if user.role == Role.admin.value:
            return cls(Role.admin)
        if user.role == Role.artist.value and user.artist_id:
            return cls(Role.artist, artist_id=user.artist_id)
        return cls(Role.user)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin

    def owns(self, artist_id: Optional[str]) -> bool:
        return self.role is Role.artist and bool(self.artist_id) and self.artist_id == artist_id


def can_moderate(requester: Requester, track: Track) -> bool:
    return requester.is_admin or requester.owns(track.artist_id)


def is_visible(track: Track, requester: Requester) -> bool:
    if (track.status or STATUS_PUBLISHED) == STATUS_PUBLISHED:
        return True
    return can_moderate(requester, track)


def can_see_status(requester: Requester, artist_id: Optional[str]) -> bool:
    """Whether moderation badges should be shown on an author's or track's page."""
    return requester.is_admin or requester.owns(artist_id)
