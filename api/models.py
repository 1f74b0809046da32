"""
API request and response models for SoundHub JSON endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Field names are snake_case in Python; serialization_alias gives the camelCase
keys the browser player script expects.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[object] = None


class ErrorResponse(BaseModel):
    """Every error body: {"ok": false, "error": {...}}."""

    ok: Literal[False] = False
    error: ErrorDetail


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------


class LikeResponse(BaseModel):
    """Response for POST /api/like/{track_id}.

    guest is only present (and true) when the caller is not logged in; the
    route serializes with exclude_none so logged-in responses omit the key.
    """

    ok: bool = True
    liked: bool
    likes: list[str]
    guest: Optional[bool] = None


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class MeUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: Optional[str] = None
    display_name: str = Field(serialization_alias="displayName")
    role: str
    provider: str


class MeResponse(BaseModel):
    """Response for GET /api/me. user is null for guests."""

    ok: bool = True
    user: Optional[MeUser] = None
    likes: list[str]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
