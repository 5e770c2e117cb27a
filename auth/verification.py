"""
auth/verification.py -- Issue and redeem single-use verification codes.

A code moves through two states:

    issued --(redeemed before expires_at)--> spent (row deleted)
    issued --(expires_at passes)-----------> expired

"Expired" is evaluated on lookup, not written anywhere. The row stays until
the purge task in api/main.py removes it.

Issuing a new code does not invalidate older unexpired codes for the same
user and purpose. Any of them can still be redeemed until it expires.

Layer rule: no imports from api/, notify/, or projects/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import TokenExpiredError, TokenNotFoundError
from auth.models import User, VerificationToken
from auth.store import AccountStore, to_iso
from auth.tokens import generate_verification_code, hash_verification_code
from core.config import get_settings

logger = logging.getLogger("uptrack.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Creates and validates confirmation / password-reset codes.

    clock is injectable so tests can step past the validity window without
    sleeping.
    """

    def __init__(
        self,
        store: AccountStore,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds or get_settings().verification_token_ttl_seconds)
        self.clock = clock

    def issue(self, user: User, purpose: str) -> str:
        """Persist a new code for `user` and return the raw value.

        The raw value is returned exactly once; only its HMAC is stored.
        """
        raw = generate_verification_code()
        now = self.clock()
        self.store.create_token(
            VerificationToken(
                user_id=user.id,
                purpose=purpose,
                token_hash=hash_verification_code(raw),
                created_at=to_iso(now),
                expires_at=to_iso(now + self.ttl),
            )
        )
        logger.info("Issued %s code for user_id=%s", purpose, user.id)
        return raw

    def redeem(self, raw: str, purpose: str) -> VerificationToken:
        """Look up a code without spending it.

        Raises TokenNotFoundError if no code matches (a code issued for a
        different purpose counts as no match) and TokenExpiredError if the
        match is past its expiry. Expired rows are left in place.
        """
        token = self.store.get_token_by_hash(hash_verification_code(raw))
        if token is None or token.purpose != purpose:
            raise TokenNotFoundError()
        if self.clock() > datetime.fromisoformat(token.expires_at):
            raise TokenExpiredError()
        return token

    def spend(self, token: VerificationToken, **user_fields) -> bool:
        """Delete `token` and apply `user_fields` to its owner atomically.

        Returns False if the token was already spent by a concurrent request.
        """
        return self.store.redeem_token(token, **user_fields)
