"""
api/routes/v1/password_reset.py -- Forgotten-password flow and its admin tools.

Routes (all under /api/v1/auth/reset-password):
  POST   /request          -- issue a reset token for an email (generic reply)
  GET    /validate/{token} -- check a token before showing the new-password form
  POST   /reset            -- consume a token and set a new password
  DELETE /cleanup          -- purge expired/used tokens (admin only)
  DELETE /user/{user_id}   -- delete every reset token of a user (admin only)
  POST   /debug/get-token  -- latest token for an email (admin, DEBUG + MemoryOutbox only)

Security:
  POST /request replies identically whether or not the email exists, so it
  cannot be used to enumerate accounts. It is rate-limited per IP.
  The raw token goes to the delivery backend, never into the response.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Request

from api.limiter import limiter
from api.models import (
    CleanupResponse,
    DebugTokenRequest,
    DebugTokenResponse,
    DeletedCountResponse,
    MessageResponse,
    ResetPasswordRequest,
    ResetRequest,
    ResetValidateResponse,
)
from api.routes.v1.auth import client_info
from auth.delivery import MemoryOutbox
from auth.dependencies import require_admin
from auth.models import User
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

router = APIRouter(prefix="/auth/reset-password")


@router.post("/request", response_model=MessageResponse)
@limiter.limit(_settings.reset_rate_limit)
def request_reset(request: Request, body: ResetRequest) -> MessageResponse:
    service: AuthService = request.app.state.auth_service
    message = service.request_password_reset(body.email, client_info(request))
    return MessageResponse(message=message)


@router.get("/validate/{token}", response_model=ResetValidateResponse)
def validate_token(request: Request, token: str = Path(min_length=1, max_length=256)) -> ResetValidateResponse:
    """400 invalid_token for unknown/used tokens, 400 token_expired for stale ones."""
    service: AuthService = request.app.state.auth_service
    reset_token, user = service.validate_reset_token(token)
    return ResetValidateResponse(valid=True, username=user.username, expires_at=reset_token.expires_at)


@router.post("/reset", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password. Every session of the account is ended."""
    service: AuthService = request.app.state.auth_service
    service.reset_password(body.token, body.new_password, client_info(request))
    return MessageResponse(message="Password has been reset. Please log in with your new password.")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.delete("/cleanup", response_model=CleanupResponse)
def cleanup(request: Request, current_user: User = Depends(require_admin)) -> CleanupResponse:
    """Run the token cleanup the background task runs, on demand."""
    service: AuthService = request.app.state.auth_service
    return CleanupResponse(**service.cleanup_expired())


@router.delete("/user/{user_id}", response_model=DeletedCountResponse)
def delete_user_tokens(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_admin),
) -> DeletedCountResponse:
    service: AuthService = request.app.state.auth_service
    if service.store.get_by_id(user_id) is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return DeletedCountResponse(deleted=service.store.delete_reset_tokens_for_user(user_id))


@router.post("/debug/get-token", response_model=DebugTokenResponse, include_in_schema=False)
def debug_get_token(
    request: Request,
    body: DebugTokenRequest,
    current_user: User = Depends(require_admin),
) -> DebugTokenResponse:
    """Return the latest raw reset token delivered to an email.

    Exists only when DEBUG=true and the in-memory outbox is the delivery
    backend. Anywhere else it answers 404 as if it were not there.
    """
    outbox = request.app.state.reset_delivery
    if not (_settings.debug and isinstance(outbox, MemoryOutbox)):
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Not found."})
    token = outbox.latest_for(body.email)
    if token is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "No reset token has been issued for that email."},
        )
    return DebugTokenResponse(email=body.email, token=token)
