"""
auth/tokens.py -- Password hashing, session JWT, and verification-code hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, sub, iat, and exp. Verification returns None on any failure
       (bad signature, malformed payload, expired) -- callers cannot tell which
       check failed, and the route layer turns None into a 401.

  Passwords: bcrypt with a random per-hash salt. Cost factor comes from
       Settings.bcrypt_rounds (default 10). checkpw does the constant-time
       comparison; never compare hashes with ==.

  Verification codes: secrets.token_hex(20) gives 160 bits of entropy. We store
       HMAC-SHA256(SECRET_KEY, raw_code) so lookup is O(1) and a leaked DB does
       not hand out live codes. bcrypt's slowness is unnecessary for
       high-entropy random values.

  SECRET_KEY: sourced from core.config.get_settings(), validated at startup.

Layer rule: no imports from api/, notify/, or projects/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("uptrack.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes, so anything longer would collide
# with every password sharing that prefix. Longer input is refused instead of
# truncated. The API models enforce the same limit on request bodies.
PASSWORD_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError if the password is longer than PASSWORD_MAX_BYTES in UTF-8.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes.")
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A candidate longer than PASSWORD_MAX_BYTES can never have been hashed, so
    it is simply wrong. A malformed stored hash raises ValueError from bcrypt.
    That is a data corruption bug, not a wrong password, so it is allowed to
    propagate.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        return False
    return bcrypt.checkpw(encoded, hashed.encode("utf-8"))


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, expire_seconds: int = 0) -> str:
    """Encode a signed session JWT for the given user.

    Args:
        user_id:        Numeric user ID stored in the DB.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token is treated as unauthenticated. Route handlers turn None into 401.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("user_id"), int) or "exp" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------


def generate_verification_code() -> str:
    """Return a new opaque verification code (40 hex chars, 160 bits)."""
    return secrets.token_hex(20)


def hash_verification_code(raw_code: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_code) as a hex string.

    Deterministic, so the store can look a code up by its hash. Surrounding
    whitespace is dropped because codes are pasted back from an email.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_code.strip().encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
