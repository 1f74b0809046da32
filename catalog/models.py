"""
catalog/models.py -- Domain dataclasses for the music catalog.

These are pure data containers with zero logic. Status transitions and
visibility rules live in catalog/store.py and catalog/visibility.py.

Tracks keep any keys they were loaded with that are not modelled here in
`extra`, so rewriting tracks.json never drops data written by other tools.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

STATUS_PENDING = "pending"
STATUS_PUBLISHED = "published"
STATUS_REJECTED = "rejected"

DEFAULT_COVER = "/assets/covers/default.png"
DEFAULT_AUDIO = "/audio/sample.wav"
DEFAULT_DURATION = "0:00"


@dataclass
class Author:
    id: str
    name: str
    tagline: Optional[str] = None
    avatar: Optional[str] = None
    followers: int = 0


@dataclass
class Track:
    """A playable track and its moderation state.

    status is "pending" until an admin approves ("published") or rejects
    ("rejected") it. artist_id is the owning author; submitted_by is the user
    id of the artist account that uploaded it.
    """

    id: str
    title: str
    artist_id: str
    genre: str = "Unknown"
    duration: str = DEFAULT_DURATION
    cover: str = DEFAULT_COVER
    audio: str = DEFAULT_AUDIO
    plays: int = 0
    likes: int = 0
    status: str = STATUS_PUBLISHED
    created_at: Optional[str] = None
    submitted_by: Optional[str] = None
    published_at: Optional[str] = None
    rejected_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Playlist:
    """An ordered list of track ids. May reference hidden or deleted tracks."""

    id: str
    title: str
    track_ids: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)
