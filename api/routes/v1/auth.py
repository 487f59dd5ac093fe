"""
api/routes/v1/auth.py -- Login, registration and session endpoints.

Routes:
  POST /api/v1/auth/login          -- username-or-email + password; token pair
  POST /api/v1/auth/register       -- self-registration (customer role)
  POST /api/v1/auth/refresh-token  -- rotate refresh token; new token pair
  POST /api/v1/auth/logout         -- revoke this access token (+ refresh token)
  POST /api/v1/auth/logout-all     -- revoke every session of the caller
  GET  /api/v1/auth/me             -- current user info
  GET  /api/v1/auth/sessions       -- caller's active sessions
  GET  /api/v1/auth/history        -- caller's recent auth events

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() (via AuthService.login) provides timing equalization.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthLogResponse,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.models import ClientInfo, TokenPair, User
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/login:          public, rate limited
# - POST /api/v1/auth/register:       public (SELF_REGISTRATION_ENABLED)
# - POST /api/v1/auth/refresh-token:  public -- the refresh token is the credential
# - POST /api/v1/auth/logout:         requires auth (get_current_user)
# - POST /api/v1/auth/logout-all:     requires auth (get_current_user)
# - GET  /api/v1/auth/me:             requires auth (get_current_user)
# - GET  /api/v1/auth/sessions:       requires auth (get_current_user)
# - GET  /api/v1/auth/history:        requires auth (get_current_user)
router = APIRouter()


def client_info(request: Request) -> ClientInfo:
    """IP and User-Agent of the caller, recorded on sessions and audit rows."""
    return ClientInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )


def _token_response(user: User, pair: TokenPair, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(_settings.login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username (or email) and password.

    Returns the same generic error for unknown user, wrong password and
    inactive account ("bad_credentials").
    """
    service: AuthService = request.app.state.auth_service
    user, pair = service.login(body.username, body.password, client_info(request))
    return _token_response(user, pair)


@router.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a customer account and log it in."""
    service: AuthService = request.app.state.auth_service
    user, pair = service.register(body.username, body.email, body.password, body.full_name, client_info(request))
    return _token_response(user, pair, status_code=201)


@router.post("/auth/refresh-token", response_model=TokenResponse)
def refresh_token(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    service: AuthService = request.app.state.auth_service
    user, pair = service.refresh(body.refresh_token, client_info(request))
    return _token_response(user, pair)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: LogoutRequest | None = None,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Revoke the calling access token, and the refresh token if one is sent."""
    service: AuthService = request.app.state.auth_service
    raw_refresh = body.refresh_token if body else None
    service.logout(current_user, request.state.token_payload, raw_refresh, client_info(request))
    return MessageResponse(message="Logged out.")


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, current_user: User = Depends(get_current_user)) -> LogoutAllResponse:
    """Revoke every refresh token and every outstanding access token of the caller."""
    service: AuthService = request.app.state.auth_service
    revoked = service.logout_all(current_user, client_info(request))
    return LogoutAllResponse(message="Logged out from all devices.", sessions_revoked=revoked)


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.get("/auth/sessions", response_model=list[SessionResponse])
def sessions(request: Request, current_user: User = Depends(get_current_user)) -> list[SessionResponse]:
    """List the caller's active sessions. Raw tokens are never returned."""
    service: AuthService = request.app.state.auth_service
    return [SessionResponse.from_token(t) for t in service.active_sessions(current_user.id)]


@router.get("/auth/history", response_model=list[AuthLogResponse])
def history(
    request: Request,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
) -> list[AuthLogResponse]:
    """Most recent authentication events for the caller, newest first."""
    service: AuthService = request.app.state.auth_service
    return [AuthLogResponse.from_entry(e) for e in service.auth_history(current_user.id, limit)]
