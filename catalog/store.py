"""
catalog/store.py -- JSON-backed persistence and moderation for the catalog.

Pattern: Repository + Data Mapper (same shape as auth/store.py). CatalogStore
owns three documents -- authors.json (read-only here), tracks.json and
playlists.json -- and the _record_to_* / _*_to_record functions translate
between persisted camelCase records and the dataclasses in catalog/models.py.

Track lifecycle:
  upload  -> pending
  approve -> published   (publishedAt stamped)
  reject  -> rejected    (rejectedAt stamped)
  delete  -> gone, and pruned from every playlist
Approve and reject overwrite whatever status the track had; nothing ever
moves a track back to pending.

Usage:
    store = CatalogStore(Path("data"))
    track = store.create_track(title="Song", artist_id="a1", submitted_by="u_artist")
    store.approve(track.id)
    store.delete_track(track.id)
"""

from __future__ import annotations

import logging
import math
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from catalog.models import (
    DEFAULT_AUDIO,
    DEFAULT_COVER,
    DEFAULT_DURATION,
    STATUS_PENDING,
    STATUS_PUBLISHED,
    STATUS_REJECTED,
    Author,
    Playlist,
    Track,
)
from catalog.visibility import Requester, is_visible
from core.errors import NotFound
from storage.store import JsonDocument

logger = logging.getLogger("soundhub.catalog")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_track_id() -> str:
    return f"t_{int(time.time() * 1000):x}_{secrets.token_hex(4)}"


def _as_count(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if math.isfinite(number) else 0


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CatalogStore:
    def __init__(self, data_dir: Path) -> None:
        data_dir = Path(data_dir)
        self._authors = JsonDocument(data_dir / "authors.json", default=list)
        self._tracks = JsonDocument(data_dir / "tracks.json", default=list)
        self._playlists = JsonDocument(data_dir / "playlists.json", default=list)

    # ------------------------------------------------------------------
    # Authors
    # ------------------------------------------------------------------

    def list_authors(self) -> list[Author]:
        return [_record_to_author(r) for r in self._authors.read()]

    def get_author(self, author_id: str) -> Optional[Author]:
        return next((a for a in self.list_authors() if a.id == author_id), None)

    # ------------------------------------------------------------------
    # Tracks
    # ------------------------------------------------------------------

    def list_tracks(self) -> list[Track]:
        """Every track in stored order, normalized, regardless of status."""
        return [_record_to_track(r) for r in self._tracks.read()]

    def get_track(self, track_id: str) -> Optional[Track]:
        return next((t for t in self.list_tracks() if t.id == track_id), None)

    def visible_tracks(self, requester: Requester) -> list[Track]:
        return [t for t in self.list_tracks() if is_visible(t, requester)]

    def create_track(
        self,
        title: str,
        artist_id: str,
        submitted_by: str,
        genre: str = "Unknown",
        duration: str = DEFAULT_DURATION,
        audio: Optional[str] = None,
        cover: Optional[str] = None,
    ) -> Track:
        """Add an artist upload to the moderation queue (status pending).

        New tracks go to the front of tracks.json so "newest" listings are a
        plain slice.
        """
        track = Track(
            id=new_track_id(),
            title=title,
            artist_id=artist_id,
            genre=genre or "Unknown",
            duration=duration or DEFAULT_DURATION,
            cover=cover or DEFAULT_COVER,
            audio=audio or DEFAULT_AUDIO,
            plays=0,
            likes=0,
            status=STATUS_PENDING,
            created_at=_now_iso(),
            submitted_by=submitted_by,
        )
        with self._tracks.transaction() as records:
            records.insert(0, _track_to_record(track))
        logger.info("Track %s submitted for moderation by %s", track.id, submitted_by)
        return track

    def approve(self, track_id: str) -> Track:
        return self._set_status(track_id, STATUS_PUBLISHED)

    def reject(self, track_id: str) -> Track:
        return self._set_status(track_id, STATUS_REJECTED)

    def _set_status(self, track_id: str, status: str) -> Track:
        with self._tracks.transaction() as records:
            tracks = [_record_to_track(r) for r in records]
            track = next((t for t in tracks if t.id == track_id), None)
            if track is None:
                raise NotFound("Track not found")
            track.status = status
            if status == STATUS_PUBLISHED:
                track.published_at = _now_iso()
            else:
                track.rejected_at = _now_iso()
            records[:] = [_track_to_record(t) for t in tracks]
        logger.info("Track %s -> %s", track_id, status)
        return track

    def delete_track(self, track_id: str) -> None:
        """Hard-delete a track and prune its id from every playlist."""
        with self._tracks.transaction() as records:
            remaining = [r for r in records if r.get("id") != track_id]
            if len(remaining) == len(records):
                raise NotFound("Track not found")
            records[:] = remaining

        with self._playlists.transaction() as records:
            for record in records:
                ids = record.get("trackIds")
                record["trackIds"] = [tid for tid in ids if tid != track_id] if isinstance(ids, list) else []
        logger.info("Track %s deleted", track_id)

    # ------------------------------------------------------------------
    # Playlists
    # ------------------------------------------------------------------

    def list_playlists(self) -> list[Playlist]:
        return [_record_to_playlist(r) for r in self._playlists.read()]

    def get_playlist(self, playlist_id: str) -> Optional[Playlist]:
        return next((p for p in self.list_playlists() if p.id == playlist_id), None)

    def delete_playlist(self, playlist_id: str) -> None:
        with self._playlists.transaction() as records:
            remaining = [r for r in records if r.get("id") != playlist_id]
            if len(remaining) == len(records):
                raise NotFound("Playlist not found")
            records[:] = remaining
        logger.info("Playlist %s deleted", playlist_id)


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------

_TRACK_KEYS = {
    "id",
    "title",
    "artistId",
    "genre",
    "duration",
    "cover",
    "audio",
    "plays",
    "likes",
    "status",
    "published",
    "createdAt",
    "submittedBy",
    "publishedAt",
    "rejectedAt",
}


def _record_to_author(record: dict) -> Author:
    stats = record.get("stats") or {}
    return Author(
        id=record["id"],
        name=record.get("name") or "Unknown",
        tagline=record.get("tagline"),
        avatar=record.get("avatar"),
        followers=_as_count(stats.get("followers")),
    )


def _record_to_track(record: dict) -> Track:
    """Map a stored track, filling defaults for older demo data.

    Old records have no "status" but may carry published=false, which meant
    "not yet approved".
    """
    status = record.get("status")
    if not status:
        status = STATUS_PENDING if record.get("published") is False else STATUS_PUBLISHED
    return Track(
        id=record["id"],
        title=record.get("title") or "",
        artist_id=record.get("artistId") or "",
        genre=record.get("genre") or "Unknown",
        duration=record.get("duration") or DEFAULT_DURATION,
        cover=record.get("cover") or DEFAULT_COVER,
        audio=record.get("audio") or DEFAULT_AUDIO,
        plays=_as_count(record.get("plays")),
        likes=_as_count(record.get("likes")),
        status=status,
        created_at=record.get("createdAt"),
        submitted_by=record.get("submittedBy"),
        published_at=record.get("publishedAt"),
        rejected_at=record.get("rejectedAt"),
        extra={k: v for k, v in record.items() if k not in _TRACK_KEYS},
    )


def _track_to_record(track: Track) -> dict:
    record: dict = dict(track.extra)
    record.update(
        {
            "id": track.id,
            "title": track.title,
            "artistId": track.artist_id,
            "genre": track.genre,
            "duration": track.duration,
            "cover": track.cover,
            "audio": track.audio,
            "plays": track.plays,
            "likes": track.likes,
            "status": track.status,
        }
    )
    for key, value in (
        ("createdAt", track.created_at),
        ("submittedBy", track.submitted_by),
        ("publishedAt", track.published_at),
        ("rejectedAt", track.rejected_at),
    ):
        if value is not None:
            record[key] = value
    return record


def _record_to_playlist(record: dict) -> Playlist:
    ids = record.get("trackIds")
    return Playlist(
        id=record["id"],
        title=record.get("title") or "",
        track_ids=list(ids) if isinstance(ids, list) else [],
        extra={k: v for k, v in record.items() if k not in ("id", "title", "trackIds")},
    )
