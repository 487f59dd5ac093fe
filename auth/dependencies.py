"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Clients authenticate with an Authorization: Bearer <access token> header.
A token is accepted only if all of these hold:
  1. The JWT signature and expiry verify.
  2. Its jti is not on the deny list (logout).
  3. The user exists and is active.
  4. Its "ver" claim equals the user's current token_version (logout-all,
     password change and password reset bump it).

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_role(min_role) builds a dependency that raises HTTP 403 when the
user ranks below min_role. require_admin / require_editor are prebuilt.

On success the decoded payload is left on request.state.token_payload so
logout can revoke exactly this token.

Layer rule: no imports from api/ or content/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request

from auth.models import User
from auth.roles import ADMIN, EDITOR, has_minimum_role
from auth.tokens import decode_access_token


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        token = auth_header[7:].strip()
        return token or None
    return None


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via its Bearer token.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    token = _bearer_token(request)
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None

    user_store = request.app.state.user_store
    if user_store.is_token_revoked(payload["jti"]):
        return None

    user = user_store.get_by_id(payload["user_id"])
    if user is None or not user.is_active:
        return None
    if payload.get("ver", 0) != user.token_version:
        return None

    request.state.token_payload = payload
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_role(min_role: str) -> Callable[[Request], User]:
    """Return a dependency that requires at least min_role.

    Use as a FastAPI dependency:
        @router.post("/news")
        async def route(user: User = Depends(require_role("editor"))): ...
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if not has_minimum_role(user, min_role):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{min_role.capitalize()} access required."},
            )
        return user

    return dependency


require_admin = require_role(ADMIN)
require_editor = require_role(EDITOR)
