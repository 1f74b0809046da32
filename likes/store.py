"""
likes/store.py -- Persisted likes: one ordered, duplicate-free id list per user.

user_likes.json is a single object {user_id: [track_id, ...]}. Order is the
order in which tracks were liked; removing a like keeps the rest in place.
"""

from __future__ import annotations

from pathlib import Path

from storage.store import JsonDocument

_DEMO_USERS = ("u_admin", "u_artist", "u_user")


class LikeStore:
    def __init__(self, path: Path) -> None:
        self._doc = JsonDocument(path, default=dict)

    def seed(self) -> bool:
        """Create user_likes.json with empty lists for the demo accounts if missing."""
        if self._doc.exists():
            return False
        self._doc.write({uid: [] for uid in _DEMO_USERS})
        return True

    def get(self, user_id: str) -> list[str]:
        likes = self._doc.read().get(user_id)
        return list(likes) if isinstance(likes, list) else []

    def ensure(self, user_id: str) -> None:
        """Make sure user_id has an entry (possibly empty)."""
        with self._doc.transaction() as data:
            if not isinstance(data.get(user_id), list):
                data[user_id] = []

    def toggle(self, user_id: str, track_id: str) -> tuple[bool, list[str]]:
        """Add track_id if absent, remove it if present. Returns (liked, likes)."""
        with self._doc.transaction() as data:
            likes = data.get(user_id)
            likes = list(likes) if isinstance(likes, list) else []
            if track_id in likes:
                likes = [t for t in likes if t != track_id]
                liked = False
            else:
                likes.append(track_id)
                liked = True
            data[user_id] = likes
        return liked, likes

    def add_many(self, user_id: str, track_ids: list[str]) -> list[str]:
        """Set-union track_ids into the user's list, keeping existing order first."""
        with self._doc.transaction() as data:
            likes = data.get(user_id)
            likes = list(likes) if isinstance(likes, list) else []
            for track_id in track_ids:
                if track_id not in likes:
                    likes.append(track_id)
            data[user_id] = likes
        return likes
