"""
auth/dependencies.py -- FastAPI request helpers for sessions and authentication.

Authentication is session-based: the login routes store the user id in the
signed session cookie (Starlette SessionMiddleware) and every request resolves
it back to a User through the UserStore on app.state.

try_get_current_user() is the soft variant (returns None for guests and for
stale ids whose account no longer exists). require_role() is the page gate:
anonymous visitors are redirected to /login?next=<path>, logged-in users with
the wrong role get a 403.

Layer rule: no imports from web/, catalog/, likes/, or storage/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import HTTPException, Request
from fastapi.responses import RedirectResponse

from auth.models import User
from auth.session import SessionContext


def get_session(request: Request) -> SessionContext:
    """Wrap request.session (populated by SessionMiddleware) in a SessionContext."""
    return SessionContext(request.session)


def try_get_current_user(request: Request) -> Optional[User]:
    """Return the logged-in User, or None. Never raises."""
    user_id = request.session.get("userId")
    if not user_id:
        return None
    return request.app.state.user_store.get_by_id(user_id)


def require_role(request: Request, role: str) -> tuple[Optional[User], Optional[RedirectResponse]]:
    """Gate a page on a role.

    Returns (user, None) when allowed, (None, redirect) when nobody is logged
    in. Raises HTTP 403 when the user is logged in but has another role.
    Call at the top of protected route handlers:
        user, redirect = require_role(request, "admin")
        if redirect:
            return redirect
    """
    user = try_get_current_user(request)
    if user is None:
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        return None, RedirectResponse(f"/login?next={quote(path, safe='')}", status_code=302)
    if user.role != role:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Insufficient permissions."},
        )
    return user, None
