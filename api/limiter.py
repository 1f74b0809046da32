"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware), api/routes/likes.py (the like
toggle) and web/routes.py (the login and register forms). One shared instance means all
routes count against the same in-memory store; separate instances would each
keep their own counters and never trip.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for POST /login, read at request time so tests can raise it."""
    return get_settings().login_rate_limit
