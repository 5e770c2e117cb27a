"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two places a session JWT is accepted, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients. An explicit header
     wins over whatever cookie the client happens to carry.
  2. JWT cookie ("access_token") -- set by the login endpoint.

Both converge on an AuthContext after successful verification. Handlers take
the AuthContext as a parameter; nothing is attached to the request object.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from projects/ or notify/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import AuthContext
from auth.store import AccountStore
from auth.tokens import decode_access_token


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get("access_token") or None


def try_get_current_user(request: Request) -> AuthContext | None:
    """Authenticate the request via cookie or Bearer header.

    Returns None on any failure: missing token, bad signature, expired token,
    or a user that no longer exists. Never raises.
    """
    token = _extract_token(request)
    if token is None:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    account_store: AccountStore = request.app.state.account_store
    user = account_store.get_by_id(payload["user_id"])
    if user is None or not user.confirmed:
        return None
    return AuthContext(user=user)


def get_current_user(request: Request) -> AuthContext:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(ctx: AuthContext = Depends(get_current_user)): ...
    """
    ctx = try_get_current_user(request)
    if ctx is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return ctx
