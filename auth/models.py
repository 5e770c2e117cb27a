"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in projects/models.py -- dataclasses own domain shape; stores and the
lifecycle manager do the work.

Layer rule: no imports from api/, notify/, or projects/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

PURPOSE_CONFIRM = "confirm"
PURPOSE_RESET = "reset"


@dataclass
class User:
    """A registered identity.

    email is the login name. It is stored lower-cased and stripped; the store
    normalizes on every read and write so callers never have to.

    confirmed stays False until a confirmation code is redeemed. An
    unconfirmed user can never obtain a session token.
    """

    email: str
    name: str
    hashed_password: str
    id: int | None = None
    confirmed: bool = False
    created_at: str | None = None


@dataclass
class VerificationToken:
    """A single-use, time-bounded code mailed to the user.

    Only token_hash (HMAC-SHA256 of the raw value) is persisted. The raw code
    exists in memory just long enough to be handed to the notification sink.

    Expiry is evaluated at redemption time. An expired row stays in the table
    until the purge task deletes it.
    """

    user_id: int
    purpose: str  # "confirm" | "reset"
    token_hash: str
    created_at: str
    expires_at: str
    id: int | None = None


@dataclass(frozen=True)
class AuthContext:
    """The authenticated identity for one request.

    Produced once by auth.dependencies.get_current_user() after the session
    token is verified, then passed explicitly to every handler that needs it.
    """

    user: User

    @property
    def user_id(self) -> int:
        return self.user.id


@dataclass
class StepResult:
    """Outcome of one side effect inside a multi-step account operation."""

    name: str
    ok: bool
    error: str | None = None


@dataclass
class SagaResult:
    """Primary effect plus the best-effort side effects that followed it.

    The primary step (e.g. saving the user) decides success. Secondary steps
    (saving the token, dispatching mail) may fail without rolling the primary
    step back; callers inspect `degraded` to see whether that happened.
    """

    primary: StepResult
    secondary: list[StepResult] = field(default_factory=list)
    user_id: int | None = None

    @property
    def degraded(self) -> bool:
        return self.primary.ok and any(not step.ok for step in self.secondary)
