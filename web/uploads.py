"""
web/uploads.py -- Validation and storage of artist media uploads.

Files land under PUBLIC_DIR/uploads/{audio,covers}/ with a random name and are
served back by the static mount in asgi.py. Only the extension is checked; a
file with no extension at all is accepted, as browsers sometimes send one.
"""

import logging
import secrets
import time
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from core.errors import InvalidInput

logger = logging.getLogger("soundhub.web.uploads")

AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".ogg", ".m4a", ".aac"})
IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp"})

_MAX_EXT_LEN = 10


def _extension(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    return ext if len(ext) <= _MAX_EXT_LEN else ""


def random_filename(ext: str) -> str:
    return f"{int(time.time() * 1000):x}-{secrets.token_hex(6)}{ext}"


async def read_upload(
    upload: Optional[UploadFile],
    allowed: frozenset[str],
    max_bytes: int,
    bad_type_reason: str,
) -> Optional[tuple[bytes, str]]:
    """Read and validate one form file. Returns (data, ext) or None if no file was sent.

    Reads at most max_bytes + 1 bytes so an oversized upload is detected
    without buffering all of it.
    """
    if upload is None or not upload.filename:
        return None
    ext = _extension(upload.filename)
    if ext and ext not in allowed:
        raise InvalidInput(bad_type_reason, f"Unsupported file type {ext!r}.")
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise InvalidInput("file_too_large", "File is too large.")
    return data, ext


def store_upload(data: bytes, ext: str, kind: str, upload_dir: Path) -> str:
    """Write data under upload_dir/kind and return its public URL path."""
    target_dir = upload_dir / kind
    target_dir.mkdir(parents=True, exist_ok=True)
    name = random_filename(ext)
    (target_dir / name).write_bytes(data)
    logger.info("Stored %d byte upload as %s/%s", len(data), kind, name)
    return f"/uploads/{kind}/{name}"
