"""
storage/store.py -- One JSON document on disk, read and rewritten wholesale.

Every collection (users, likes, tracks, playlists, authors) is a single JSON
file. Repositories in auth/, likes/ and catalog/ own one JsonDocument each and
never open files themselves.

Concurrency: each document owns a lock. transaction() holds it for the whole
read-modify-write sequence, so two in-process writers cannot interleave and
drop each other's update. Writes go to a temp file in the same directory and
are moved into place with os.replace(), so a crash mid-write leaves the old
document intact. There is no cross-process coordination.

Usage:
    doc = JsonDocument(Path("data/tracks.json"), default=list)
    tracks = doc.read()
    with doc.transaction() as tracks:
        tracks.append({...})
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from core.errors import StorageError

logger = logging.getLogger("soundhub.storage")


class JsonDocument:
    def __init__(self, path: Path, default: Callable[[], Any] = list) -> None:
        self.path = Path(path)
        self._default = default
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Any:
        """Return the parsed document, or a fresh default if missing or unreadable.

        A corrupt file is logged and treated as empty for display purposes.
        transaction() refuses to write over it.
        """
        try:
            return self._load()
        except StorageError as exc:
            logger.warning("%s, using empty default", exc)
            return self._default()

    def _load(self) -> Any:
        try:
            with self.path.open(encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return self._default()
        except (OSError, ValueError) as exc:
            raise StorageError(f"Could not read {self.path.name}: {exc}") from exc

    def write(self, data: Any) -> None:
        """Atomically replace the document. Raises StorageError on any I/O failure."""
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as fh:
                        json.dump(data, fh, ensure_ascii=False, indent=2)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as exc:
                raise StorageError(f"Could not write {self.path.name}: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Yield the current document for in-place mutation; write it back on clean exit.

        If the body raises, nothing is written. A document that exists but does
        not parse raises StorageError instead of being replaced by the default.
        """
        with self._lock:
            data = self._load()
            yield data
            self.write(data)
