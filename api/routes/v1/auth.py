"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register                 -- create unconfirmed account; mails a code
  POST /api/v1/auth/confirm                  -- redeem confirmation code
  POST /api/v1/auth/login                    -- password login; returns JWT and sets cookie
  POST /api/v1/auth/logout                   -- clears cookie
  POST /api/v1/auth/request-code             -- mail a new confirmation code
  POST /api/v1/auth/forgot-password          -- mail a password-reset code
  POST /api/v1/auth/validate-token           -- check a reset code without spending it
  POST /api/v1/auth/update-password/{token}  -- spend a reset code, set new password
  GET  /api/v1/auth/me                       -- current user (requires auth)
  PUT  /api/v1/auth/profile                  -- change name/email (requires auth)
  POST /api/v1/auth/change-password          -- change password (requires auth)
  POST /api/v1/auth/check-password           -- re-check password (requires auth)

Handlers are plain `def`, not `async def`: FastAPI runs them in its worker
thread pool, so bcrypt hashing never blocks the event loop.

AuthError subclasses raised by AccountManager propagate to the handler in
api/main.py, which turns them into the standard error envelope.

Security:
  [M5] Cache-Control: no-store on login responses.
  Logout is client-side only: JWTs are stateless and there is no revocation list.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    ChangePasswordRequest,
    CheckPasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    NewPasswordRequest,
    ProfileUpdate,
    RegisterRequest,
    TokenRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.lifecycle import AccountManager
from auth.models import AuthContext
from auth.tokens import set_auth_cookie
from core.config import get_settings

# Auth policy:
# - register, confirm, login, logout, request-code, forgot-password,
#   validate-token, update-password/{token}: public
# - me, profile, change-password, check-password: requires auth (get_current_user)
router = APIRouter()


def _manager(request: Request) -> AccountManager:
    return request.app.state.account_manager


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Create an account and mail its confirmation code.

    Succeeds even if saving the code or sending the mail failed afterwards;
    the user can ask for a new code via /auth/request-code.
    """
    _manager(request).register(body.email, body.name, body.password)
    return MessageResponse(message="Account created. Check your email to confirm it.")


@router.post("/auth/confirm", response_model=MessageResponse)
def confirm_account(request: Request, body: TokenRequest) -> MessageResponse:
    _manager(request).confirm(body.token)
    return MessageResponse(message="Account confirmed.")


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for a session JWT.

    Unconfirmed accounts are refused with 401 `unconfirmed` and get a fresh
    confirmation code mailed, whether or not the password was right.
    """
    token = _manager(request).login(body.email, body.password)
    expires_in = get_settings().token_expire_seconds
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(access_token=token, expires_in=expires_in).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@router.post("/auth/request-code", response_model=MessageResponse)
def request_confirmation_code(request: Request, body: EmailRequest) -> MessageResponse:
    _manager(request).request_reconfirmation(body.email)
    return MessageResponse(message="A new code was sent to your email.")


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: EmailRequest) -> MessageResponse:
    _manager(request).request_password_reset(body.email)
    return MessageResponse(message="Check your email for instructions.")


@router.post("/auth/validate-token", response_model=MessageResponse)
def validate_reset_token(request: Request, body: TokenRequest) -> MessageResponse:
    """Check a reset code. The code stays usable for /auth/update-password."""
    _manager(request).validate_reset_token(body.token)
    return MessageResponse(message="Valid code. Choose your new password.")


@router.post("/auth/update-password/{token}", response_model=MessageResponse)
def update_password_with_token(request: Request, token: str, body: NewPasswordRequest) -> MessageResponse:
    _manager(request).reset_password(token, body.password)
    return MessageResponse(message="Password updated.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(ctx: AuthContext = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(ctx.user)


@router.put("/auth/profile", response_model=UserResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    ctx: AuthContext = Depends(get_current_user),
) -> UserResponse:
    updated = _manager(request).update_profile(ctx.user, body.name, body.email)
    return UserResponse.from_user(updated)


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    ctx: AuthContext = Depends(get_current_user),
) -> MessageResponse:
    _manager(request).change_password(ctx.user, body.current_password, body.password)
    return MessageResponse(message="Password updated.")


@router.post("/auth/check-password", response_model=MessageResponse)
def check_password(
    request: Request,
    body: CheckPasswordRequest,
    ctx: AuthContext = Depends(get_current_user),
) -> MessageResponse:
    """Confirm the caller still knows their password (used before destructive actions)."""
    _manager(request).check_password(ctx.user, body.password)
    return MessageResponse(message="Password is correct.")
