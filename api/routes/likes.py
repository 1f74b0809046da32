"""
api/routes/likes.py -- JSON endpoints used by the in-page player script.

Routes:
  POST /api/like/{track_id}  -- toggle a like for the current visitor (guest or user)
  GET  /api/me               -- current identity and effective likes

Auth policy:
  Both routes are public. Guests get session-scoped likes; logged-in users get
  persisted ones. Hidden tracks are refused with 403, missing ones with 404,
  before anything is written (errors mapped in api/main.py).
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.limiter import limiter
from api.models import LikeResponse, MeResponse, MeUser
from auth.dependencies import get_session, try_get_current_user
from likes.service import get_effective_likes, toggle_like

router = APIRouter()


@router.post("/like/{track_id}", response_model=LikeResponse, response_model_exclude_none=True)
@limiter.limit("120/minute")
def like_track(request: Request, track_id: str) -> LikeResponse:
    """Toggle the like on track_id and return the visitor's full like list."""
    user = try_get_current_user(request)
    session = get_session(request)
    liked, likes = toggle_like(
        track_id,
        session,
        user,
        request.app.state.catalog,
        request.app.state.like_store,
    )
    return LikeResponse(liked=liked, likes=likes, guest=True if user is None else None)


@router.get("/me", response_model=MeResponse)
def me(request: Request) -> MeResponse:
    """Return identity information (or null) plus the visitor's effective likes."""
    user = try_get_current_user(request)
    likes = get_effective_likes(get_session(request), user, request.app.state.like_store)
    if user is None:
        return MeResponse(user=None, likes=likes)
    return MeResponse(
        user=MeUser(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            role=user.role,
            provider=user.provider,
        ),
        likes=likes,
    )
