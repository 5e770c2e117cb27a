"""
auth/lifecycle.py -- Account lifecycle: registration, confirmation, login, resets.

State machine for an account:

    register() --> unconfirmed --(confirm(code))--> confirmed

An unconfirmed account can never log in. Each login attempt on one mails a
fresh confirmation code instead (the password is not even checked).

Side effects that follow a successful primary step (saving the code, sending
the mail) are best-effort. Their failures are recorded in the returned
SagaResult and logged; the primary step is not rolled back and the caller
still reports success. Code redemption is the exception: spending the code
and applying its effect happen in one transaction (see AccountStore.redeem_token).

Outcomes other than success are raised as auth.errors.AuthError subclasses.

Layer rule: no imports from api/ or projects/. notify/ is reached only through
the injected NotificationDispatcher.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AlreadyConfirmedError,
    BadCredentialError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    UnconfirmedError,
)
from auth.models import PURPOSE_CONFIRM, PURPOSE_RESET, SagaResult, StepResult, User
from auth.store import AccountStore, normalize_email
from auth.tokens import create_access_token, hash_password, verify_password
from auth.verification import TokenIssuer
from notify.dispatch import NotificationDispatcher

logger = logging.getLogger("uptrack.auth")


class AccountManager:
    """Orchestrates every account operation.

    Built once at startup with its collaborators and stored on app.state.

    Usage:
        manager = AccountManager(store, TokenIssuer(store), NotificationDispatcher(sink))
        manager.register("a@x.com", "A", "secret")
        manager.confirm(code_from_mail)
        token = manager.login("a@x.com", "secret")
    """

    def __init__(self, store: AccountStore, issuer: TokenIssuer, notifier: NotificationDispatcher) -> None:
        self.store = store
        self.issuer = issuer
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Registration and confirmation
    # ------------------------------------------------------------------

    def register(self, email: str, name: str, password: str) -> SagaResult:
        """Create an unconfirmed account and mail it a confirmation code.

        Raises ConflictError if the email is taken.
        """
        email = normalize_email(email)
        if self.store.get_by_email(email) is not None:
            raise ConflictError()

        user = User(email=email, name=name, hashed_password=hash_password(password))
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            raise ConflictError() from exc
        logger.info("Registered user_id=%s", user.id)

        saga = SagaResult(primary=StepResult("create_user", ok=True), user_id=user.id)
        self._send_code(user, PURPOSE_CONFIRM, saga)
        self._log_if_degraded("register", saga)
        return saga

    def confirm(self, raw_code: str) -> User:
        """Redeem a confirmation code and mark its owner confirmed.

        Raises InvalidTokenError if the code is unknown, expired, or already spent.
        """
        token = self.issuer.redeem(raw_code, PURPOSE_CONFIRM)
        user = self.store.get_by_id(token.user_id)
        if user is None or not self.issuer.spend(token, confirmed=True):
            raise InvalidTokenError()
        user.confirmed = True
        logger.info("Confirmed user_id=%s", user.id)
        return user

    def request_reconfirmation(self, email: str) -> SagaResult:
        """Mail a new confirmation code to an unconfirmed account.

        Raises NotFoundError for unknown emails and AlreadyConfirmedError if
        there is nothing left to confirm.
        """
        user = self._require_user(email)
        if user.confirmed:
            raise AlreadyConfirmedError()
        saga = SagaResult(primary=StepResult("lookup_user", ok=True), user_id=user.id)
        self._send_code(user, PURPOSE_CONFIRM, saga)
        self._log_if_degraded("request_reconfirmation", saga)
        return saga

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> str:
        """Return a session JWT for a confirmed account with the right password.

        Raises NotFoundError, UnconfirmedError (after mailing a fresh code), or
        BadCredentialError. The confirmation gate runs before the password check.
        """
        user = self._require_user(email)
        if not user.confirmed:
            saga = SagaResult(primary=StepResult("lookup_user", ok=True), user_id=user.id)
            self._send_code(user, PURPOSE_CONFIRM, saga)
            self._log_if_degraded("login", saga)
            raise UnconfirmedError()
        if not verify_password(password, user.hashed_password):
            raise BadCredentialError()
        return create_access_token(user.id)

    # ------------------------------------------------------------------
    # Password reset (validate and act are two separate requests)
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> SagaResult:
        """Mail a password-reset code. Works for confirmed and unconfirmed accounts.

        Saving the code is the primary step here, so a storage failure
        propagates. Only the mail is best-effort.
        """
        user = self._require_user(email)
        code = self.issuer.issue(user, PURPOSE_RESET)
        saga = SagaResult(primary=StepResult("issue_token", ok=True), user_id=user.id)
        sent = self.notifier.password_reset(user.email, user.name, code)
        saga.secondary.append(StepResult("notify", ok=sent, error=None if sent else "dispatch failed"))
        self._log_if_degraded("request_password_reset", saga)
        return saga

    def validate_reset_token(self, raw_code: str) -> None:
        """Check a reset code without spending it. Raises InvalidTokenError."""
        self.issuer.redeem(raw_code, PURPOSE_RESET)

    def reset_password(self, raw_code: str, new_password: str) -> User:
        """Spend a reset code and set the owner's new password."""
        token = self.issuer.redeem(raw_code, PURPOSE_RESET)
        user = self.store.get_by_id(token.user_id)
        if user is None:
            raise InvalidTokenError()
        hashed = hash_password(new_password)
        if not self.issuer.spend(token, hashed_password=hashed):
            raise InvalidTokenError()
        user.hashed_password = hashed
        logger.info("Password reset for user_id=%s", user.id)
        return user

    # ------------------------------------------------------------------
    # Authenticated account maintenance
    # ------------------------------------------------------------------

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """Replace the password after re-checking the current one against the DB."""
        stored = self._reload(user)
        if not verify_password(current_password, stored.hashed_password):
            raise BadCredentialError("Current password is incorrect.")
        self.store.update_user(stored.id, hashed_password=hash_password(new_password))
        logger.info("Password changed for user_id=%s", stored.id)

    def check_password(self, user: User, password: str) -> None:
        """Raise BadCredentialError unless `password` is the user's current one."""
        stored = self._reload(user)
        if not verify_password(password, stored.hashed_password):
            raise BadCredentialError()

    def update_profile(self, user: User, name: str, email: str) -> User:
        """Change name and email. Raises ConflictError if the email belongs to someone else."""
        email = normalize_email(email)
        existing = self.store.get_by_email(email)
        if existing is not None and existing.id != user.id:
            raise ConflictError("That email is already registered.")
        try:
            self.store.update_user(user.id, name=name, email=email)
        except IntegrityError as exc:
            raise ConflictError("That email is already registered.") from exc
        return self._reload(user)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, email: str) -> User:
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFoundError()
        return user

    def _reload(self, user: User) -> User:
        stored = self.store.get_by_id(user.id)
        if stored is None:
            raise NotFoundError()
        return stored

    def _send_code(self, user: User, purpose: str, saga: SagaResult) -> None:
        """Issue a code and mail it, recording both steps on `saga`.

        No mail goes out if the code could not be saved, since it would be
        unusable.
        """
        try:
            code = self.issuer.issue(user, purpose)
        except SQLAlchemyError as exc:
            logger.exception("Could not save %s code for user_id=%s", purpose, user.id)
            saga.secondary.append(StepResult("issue_token", ok=False, error=type(exc).__name__))
            saga.secondary.append(StepResult("notify", ok=False, error="skipped: no code issued"))
            return
        saga.secondary.append(StepResult("issue_token", ok=True))

        if purpose == PURPOSE_CONFIRM:
            sent = self.notifier.confirmation(user.email, user.name, code)
        else:
            sent = self.notifier.password_reset(user.email, user.name, code)
        saga.secondary.append(StepResult("notify", ok=sent, error=None if sent else "dispatch failed"))

    @staticmethod
    def _log_if_degraded(operation: str, saga: SagaResult) -> None:
        if saga.degraded:
            failed = ", ".join(f"{s.name}={s.error}" for s in saga.secondary if not s.ok)
            logger.warning("%s for user_id=%s completed with failed side effects: %s", operation, saga.user_id, failed)
