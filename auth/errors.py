"""
auth/errors.py -- Outcomes of account operations that the caller must handle.

None of these are crashes. Each carries a stable machine-readable `code` and
the HTTP status the API layer should answer with, so api/main.py can map the
whole family with a single exception handler.

Layer rule: no imports from api/, notify/, or projects/.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class ConflictError(AuthError):
    code = "conflict"
    status_code = 409
    message = "A user with that email is already registered."


class NotFoundError(AuthError):
    code = "not_found"
    status_code = 404
    message = "User not found."


class InvalidTokenError(AuthError):
    code = "invalid_token"
    status_code = 404
    message = "Invalid or expired code."


class TokenNotFoundError(InvalidTokenError):
    """No stored token matches the submitted code."""


class TokenExpiredError(InvalidTokenError):
    """The token exists but its validity window has elapsed."""


class UnconfirmedError(AuthError):
    code = "unconfirmed"
    status_code = 401
    message = "Account not confirmed. A new confirmation code has been sent."


class AlreadyConfirmedError(AuthError):
    code = "already_confirmed"
    status_code = 403
    message = "Account is already confirmed."


class BadCredentialError(AuthError):
    code = "bad_credentials"
    status_code = 401
    message = "Incorrect password."
