"""
core/errors.py -- Domain exception taxonomy.

Stores and services raise these; api/main.py maps them to HTTP responses in
one place so route handlers stay free of status-code bookkeeping.

Layer rule: core/ is the kernel -- no imports from any other package.
"""

from __future__ import annotations

from typing import Any, Optional


class SoundHubError(Exception):
    """Base class for every expected, user-facing failure."""

    code = "error"


class InvalidInput(SoundHubError):
    """Malformed registration or upload fields.

    reason is a short machine code ("bad_email", "short_password", ...) that the
    web layer maps to a whitelisted human-readable message.
    """

    code = "invalid_input"

    def __init__(self, reason: str, message: str = "Invalid input.") -> None:
        super().__init__(message)
        self.reason = reason


class DuplicateEmail(SoundHubError):
    code = "duplicate_email"

    def __init__(self, email: str) -> None:
        super().__init__("An account with this email already exists.")
        self.email = email


class NotFound(SoundHubError):
    code = "not_found"


class Forbidden(SoundHubError):
    code = "forbidden"


class OAuthStateMismatch(SoundHubError):
    """The callback's state does not match the one issued for this provider."""

    code = "bad_state"

    def __init__(self, provider: str) -> None:
        super().__init__("Bad state")
        self.provider = provider


class OAuthProviderError(SoundHubError):
    """The provider rejected the code exchange or the profile request.

    payload is whatever the provider returned. It is logged; callers decide
    whether to echo it (DEBUG only).
    """

    code = "oauth_provider_error"

    def __init__(self, provider: str, stage: str, payload: Optional[Any] = None) -> None:
        super().__init__(f"{provider} {stage} error")
        self.provider = provider
        self.stage = stage
        self.payload = payload


class StorageError(SoundHubError):
    """A JSON document could not be read for update or written. Fatal for the current request."""

    code = "storage_error"
