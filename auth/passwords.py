"""
auth/passwords.py -- Local password hashing and constant-time authentication.

Security design decisions:
  Passwords: scrypt (memory-hard) with a per-user random salt. Stored as
       "<salt hex>:<derived key hex>". The salt string itself (not its decoded
       bytes) is the scrypt salt, so hashes already stored in users.json
       keep verifying.

  Comparison: hmac.compare_digest on equal-length byte strings, so the check
       takes the same time wherever the first differing byte is.

  Timing equalization [C1]: authenticate_local() always runs scrypt, against
       _DUMMY_HASH when the email is unknown, so response time does not reveal
       which emails have local accounts.

Layer rule: no imports from api/, web/, catalog/, likes/, or storage/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("soundhub.auth")

# scrypt cost parameters: N=2**14, r=8, p=1 needs 16 MiB per hash.
_SCRYPT_N = 16384
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LEN = 64


def _derive(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=_KEY_LEN,
    )


def hash_password(plain: str, salt: str | None = None) -> str:
    """Return "salt:hash" for the given plaintext password."""
    salt = salt or secrets.token_hex(16)
    return f"{salt}:{_derive(plain, salt).hex()}"


def verify_password(plain: str, stored: str | None) -> bool:
    """Return True if plain matches the stored "salt:hash" value.

    A missing or malformed stored value (OAuth-only accounts have None) is a
    plain mismatch, never an exception.
    """
    if not stored or not isinstance(stored, str) or ":" not in stored:
        return False
    salt, _, expected_hex = stored.partition(":")
    try:
        expected = bytes.fromhex(expected_hex)
    except ValueError:
        return False
    candidate = _derive(plain, salt)
    if len(expected) != len(candidate):
        return False
    return hmac.compare_digest(expected, candidate)


# Computed once at module load so the first failed login is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("soundhub_timing_dummy")


def authenticate_local(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization [C1].

    Only accounts created with the local provider are considered. Returns the
    User on success, None on any failure.
    """
    user = store.get_local_by_email(email)
    if user is None or not user.password_hash:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
