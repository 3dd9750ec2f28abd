"""
auth/tokens.py -- Password hashing, JWT encode/decode, and the auth cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email (sub), role, a per-session jti, and expiry.
       decode_access_token() returns None on any failure -- it never tells
       the caller whether the token was expired, tampered with, or malformed.

  Passwords: bcrypt used directly with a configurable cost (BCRYPT_ROUNDS,
       12 or more outside DEBUG). A fresh salt is generated per hash, so the
       same password never hashes to the same string twice. The _DUMMY_HASH
       constant enables timing equalization in CredentialStore.authenticate()
       so response time does not reveal whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup.

Layer rule: no imports from api/, invites/, submissions/, or notify/. Import
from core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings
from core.db import utcnow

logger = logging.getLogger("reviewdesk.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

COOKIE_NAME = "access_token"

_BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Only the first 72 bytes of the password are significant to bcrypt.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8")[:_BCRYPT_MAX_BYTES], salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Fails closed: a malformed hash or any bcrypt error yields False.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8"))
    except Exception:
        logger.warning("Password verification failed on a malformed hash")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("reviewdesk_timing_dummy")


def burn_verification(plain: str) -> None:
    """Run one bcrypt comparison against the dummy hash and discard the result.

    Called when the email is unknown so the response takes as long as a real
    wrong-password check.
    """
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    """Random identifier for one session; becomes the token's jti claim."""
    return secrets.token_hex(16)


def create_access_token(
    user_id: int,
    email: str,
    role: str,
    session_id: str,
    issued_at: Optional[datetime] = None,
    expire_seconds: int = 0,
) -> str:
    """Encode a signed JWT bound to one session record.

    Args:
        user_id:        Account ID.
        email:          Stored as the subject claim.
        role:           Role at issue time (informational; validation always
                        re-reads the account's current role).
        session_id:     The session record's ID, carried as jti.
        issued_at:      Defaults to now.
        expire_seconds: Absolute lifetime. 0 means Settings.token_expire_seconds.
    """
    issued_at = issued_at or utcnow()
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    payload = {
        "sub": email,
        "user_id": user_id,
        "role": role,
        "jti": session_id,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload or "jti" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the token expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
