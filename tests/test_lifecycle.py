"""Unit tests for auth/lifecycle.py -- the account state machine.

Covers:
- register -> confirm -> login scenario, including wrong code and wrong password
- unconfirmed accounts never get a session token, whatever the password
- login on an unconfirmed account mails a fresh confirmation code
- conflict on duplicate (case-insensitive) email
- reconfirmation guards (unknown email, already confirmed)
- reset flow: validate is non-consuming, reset is single-use
- expired codes are rejected
- change/check password and profile update
- best-effort side effects: failures are recorded on the SagaResult, not raised
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import (
    AlreadyConfirmedError,
    BadCredentialError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    UnconfirmedError,
)
from auth.tokens import decode_access_token, verify_password


def _register_and_confirm(manager, sink, email="a@x.com", password="secret"):
    manager.register(email, "A", password)
    manager.confirm(sink.last("confirmation", email))


class TestRegistrationScenario:
    def test_full_happy_path(self, manager, sink) -> None:
        saga = manager.register("a@x.com", "A", "secret")
        assert saga.primary.ok and not saga.degraded

        with pytest.raises(InvalidTokenError):
            manager.confirm("wrong-token")

        user = manager.confirm(sink.last("confirmation", "a@x.com"))
        assert user.confirmed is True

        token = manager.login("a@x.com", "secret")
        assert decode_access_token(token)["user_id"] == user.id

        with pytest.raises(BadCredentialError):
            manager.login("a@x.com", "wrong")

    def test_register_stores_unconfirmed_user_with_hash(self, manager, account_store) -> None:
        manager.register("New@Example.com ", "New", "pw-123456")
        user = account_store.get_by_email("new@example.com")
        assert user is not None
        assert user.confirmed is False
        assert user.hashed_password != "pw-123456"
        assert verify_password("pw-123456", user.hashed_password)

    def test_register_mails_confirmation_code(self, manager, sink) -> None:
        manager.register("a@x.com", "Alice", "secret")
        (sent,) = sink.sent
        assert sent.kind == "confirmation"
        assert sent.email == "a@x.com"
        assert sent.name == "Alice"

    def test_duplicate_email_conflicts(self, manager) -> None:
        manager.register("a@x.com", "A", "secret")
        with pytest.raises(ConflictError):
            manager.register("A@X.COM", "Other", "secret2")

    def test_storage_unique_constraint_is_the_backstop(self, manager, account_store) -> None:
        """If the pre-check misses a concurrent insert, IntegrityError still maps to Conflict."""
        manager.register("a@x.com", "A", "secret")
        with patch.object(account_store, "get_by_email", return_value=None):
            with pytest.raises(ConflictError):
                manager.register("a@x.com", "A", "secret")

    def test_confirmation_code_is_single_use(self, manager, sink) -> None:
        manager.register("a@x.com", "A", "secret")
        code = sink.last("confirmation")
        manager.confirm(code)
        with pytest.raises(InvalidTokenError):
            manager.confirm(code)

    def test_expired_confirmation_code_is_rejected(self, manager, sink, clock, account_store) -> None:
        manager.register("a@x.com", "A", "secret")
        clock.advance(minutes=10, seconds=1)
        with pytest.raises(InvalidTokenError):
            manager.confirm(sink.last("confirmation"))
        assert account_store.get_by_email("a@x.com").confirmed is False

    def test_reset_code_cannot_confirm_account(self, manager, sink) -> None:
        manager.register("a@x.com", "A", "secret")
        manager.request_password_reset("a@x.com")
        with pytest.raises(InvalidTokenError):
            manager.confirm(sink.last("password_reset"))


class TestLoginGate:
    @pytest.mark.parametrize("password", ["secret", "wrong", ""])
    def test_unconfirmed_never_gets_a_session(self, manager, password) -> None:
        manager.register("a@x.com", "A", "secret")
        with pytest.raises(UnconfirmedError):
            manager.login("a@x.com", password)

    def test_unconfirmed_login_mails_fresh_code(self, manager, sink) -> None:
        manager.register("a@x.com", "A", "secret")
        first = sink.last("confirmation")
        with pytest.raises(UnconfirmedError):
            manager.login("a@x.com", "secret")
        assert len(sink.sent) == 2
        second = sink.last("confirmation")
        assert second != first
        # The older code is not revoked by the new one.
        manager.confirm(first)
        with pytest.raises(InvalidTokenError):
            manager.confirm(first)

    def test_unknown_email(self, manager) -> None:
        with pytest.raises(NotFoundError):
            manager.login("ghost@x.com", "secret")

    def test_login_email_is_case_insensitive(self, manager, sink) -> None:
        _register_and_confirm(manager, sink)
        assert manager.login("  A@X.com", "secret")


class TestReconfirmation:
    def test_sends_new_code(self, manager, sink) -> None:
        manager.register("a@x.com", "A", "secret")
        saga = manager.request_reconfirmation("a@x.com")
        assert not saga.degraded
        assert [s.kind for s in sink.sent] == ["confirmation", "confirmation"]
        manager.confirm(sink.last("confirmation"))

    def test_unknown_email(self, manager) -> None:
        with pytest.raises(NotFoundError):
            manager.request_reconfirmation("ghost@x.com")

    def test_already_confirmed(self, manager, sink) -> None:
        _register_and_confirm(manager, sink)
        with pytest.raises(AlreadyConfirmedError):
            manager.request_reconfirmation("a@x.com")


class TestPasswordReset:
    def test_full_reset_scenario(self, manager, sink) -> None:
        _register_and_confirm(manager, sink)
        manager.request_password_reset("a@x.com")
        code = sink.last("password_reset")

        manager.validate_reset_token(code)
        manager.validate_reset_token(code)  # still valid: validation does not consume

        manager.reset_password(code, "newpw")
        with pytest.raises(InvalidTokenError):
            manager.reset_password(code, "again")

        assert manager.login("a@x.com", "newpw")
        with pytest.raises(BadCredentialError):
            manager.login("a@x.com", "secret")

    def test_works_for_unconfirmed_accounts(self, manager, sink, account_store) -> None:
        manager.register("a@x.com", "A", "secret")
        manager.request_password_reset("a@x.com")
        manager.reset_password(sink.last("password_reset"), "newpw")
        user = account_store.get_by_email("a@x.com")
        assert user.confirmed is False
        assert verify_password("newpw", user.hashed_password)

    def test_unknown_email(self, manager) -> None:
        with pytest.raises(NotFoundError):
            manager.request_password_reset("ghost@x.com")

    def test_invalid_code(self, manager) -> None:
        with pytest.raises(InvalidTokenError):
            manager.validate_reset_token("nope")
        with pytest.raises(InvalidTokenError):
            manager.reset_password("nope", "newpw")

    def test_expired_code(self, manager, sink, clock) -> None:
        _register_and_confirm(manager, sink)
        manager.request_password_reset("a@x.com")
        code = sink.last("password_reset")
        clock.advance(minutes=15)
        with pytest.raises(InvalidTokenError):
            manager.validate_reset_token(code)
        with pytest.raises(InvalidTokenError):
            manager.reset_password(code, "newpw")

    def test_confirmation_code_cannot_reset_password(self, manager, sink) -> None:
        manager.register("a@x.com", "A", "secret")
        with pytest.raises(InvalidTokenError):
            manager.reset_password(sink.last("confirmation"), "hijack")


class TestAccountMaintenance:
    def test_change_password_requires_current(self, manager, sink, account_store) -> None:
        _register_and_confirm(manager, sink)
        user = account_store.get_by_email("a@x.com")
        with pytest.raises(BadCredentialError):
            manager.change_password(user, "wrong", "newpw")
        manager.change_password(user, "secret", "newpw")
        assert manager.login("a@x.com", "newpw")

    def test_change_password_checks_stored_hash_not_stale_object(self, manager, sink, account_store) -> None:
        _register_and_confirm(manager, sink)
        stale = account_store.get_by_email("a@x.com")
        manager.change_password(stale, "secret", "second")
        with pytest.raises(BadCredentialError):
            manager.change_password(stale, "secret", "third")

    def test_check_password(self, manager, sink, account_store) -> None:
        _register_and_confirm(manager, sink)
        user = account_store.get_by_email("a@x.com")
        manager.check_password(user, "secret")
        with pytest.raises(BadCredentialError):
            manager.check_password(user, "nope")

    def test_update_profile(self, manager, sink, account_store) -> None:
        _register_and_confirm(manager, sink)
        user = account_store.get_by_email("a@x.com")
        updated = manager.update_profile(user, "Alice", "Alice@New.com")
        assert updated.name == "Alice"
        assert updated.email == "alice@new.com"

    def test_update_profile_keeps_own_email(self, manager, sink, account_store) -> None:
        _register_and_confirm(manager, sink)
        user = account_store.get_by_email("a@x.com")
        assert manager.update_profile(user, "Renamed", "a@x.com").name == "Renamed"

    def test_update_profile_email_conflict(self, manager, sink, account_store) -> None:
        _register_and_confirm(manager, sink)
        manager.register("b@x.com", "B", "secret")
        user = account_store.get_by_email("a@x.com")
        with pytest.raises(ConflictError):
            manager.update_profile(user, "A", "b@x.com")


class TestBestEffortSideEffects:
    def test_failed_mail_does_not_fail_registration(self, manager, sink, account_store) -> None:
        sink.fail = True
        saga = manager.register("a@x.com", "A", "secret")
        assert saga.primary.ok
        assert saga.degraded
        assert [(s.name, s.ok) for s in saga.secondary] == [("issue_token", True), ("notify", False)]
        assert account_store.get_by_email("a@x.com") is not None

    def test_failed_token_save_is_not_rolled_back(self, manager, issuer, sink, account_store) -> None:
        boom = OperationalError("INSERT INTO verification_tokens", {}, Exception("disk full"))
        with patch.object(issuer, "issue", side_effect=boom):
            saga = manager.register("a@x.com", "A", "secret")
        assert saga.primary.ok
        assert saga.degraded
        assert saga.secondary[0].name == "issue_token" and not saga.secondary[0].ok
        assert sink.sent == []  # nothing to mail without a stored code
        assert account_store.get_by_email("a@x.com") is not None

    def test_failed_mail_on_unconfirmed_login_still_reports_unconfirmed(self, manager, sink) -> None:
        manager.register("a@x.com", "A", "secret")
        sink.fail = True
        with pytest.raises(UnconfirmedError):
            manager.login("a@x.com", "secret")

    def test_failed_mail_on_reset_request_is_recorded(self, manager, sink) -> None:
        _register_and_confirm(manager, sink)
        sink.fail = True
        saga = manager.request_password_reset("a@x.com")
        assert saga.primary.ok and saga.degraded
