"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  GET    /api/v1/users                          -- paginated list (admin only)
  GET    /api/v1/users/roles                    -- role catalogue
  GET    /api/v1/users/{id}                     -- one user (self or admin)
  GET    /api/v1/users/{id}/has-role/{role}     -- role check (self or admin)
  POST   /api/v1/users                          -- create user (admin only)
  PUT    /api/v1/users/{id}                     -- update (admin: anyone; others: self, no role/is_active)
  DELETE /api/v1/users/{id}                     -- delete (admin only)
  POST   /api/v1/users/{id}/change-password     -- change password (self or admin)

Security:
  Admins cannot deactivate, demote or delete themselves, and the last active
  admin can never be deactivated, demoted or deleted (no recovery path
  without direct database access).
  IDOR guard: non-admins get 403 for any {id} other than their own.
"""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    ChangePasswordRequest,
    HasRoleResponse,
    MessageResponse,
    Pagination,
    RoleEnum,
    RoleInfo,
    SortDirEnum,
    UserCreate,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from api.routes.v1.auth import client_info
from auth import roles
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore

# Auth policy:
# - GET /users, POST /users, DELETE /users/{id}: admin (require_admin)
# - GET /users/roles: requires auth (get_current_user)
# - everything else addressed by {id}: requires auth + self-or-admin check
router = APIRouter(prefix="/users")

UserSortField = Literal["id", "username", "email", "full_name", "role", "created_at", "last_login"]


def _ensure_self_or_admin(current_user: User, user_id: int) -> None:
    if not roles.has_access(current_user, roles.ADMIN, {"user_id": user_id}):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You can only access your own account."},
        )


def _get_user_or_404(user_store: UserStore, user_id: int) -> User:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return user


def _is_last_active_admin(user_store: UserStore, user: User) -> bool:
    return user.role == roles.ADMIN and user.is_active and user_store.count_active_admins() <= 1


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.get("", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    sort_by: UserSortField = "created_at",
    sort_dir: SortDirEnum = SortDirEnum.desc,
    search: Optional[str] = Query(default=None, max_length=100),
    role: Optional[RoleEnum] = None,
    current_user: User = Depends(require_admin),
) -> UserListResponse:
    """List users. Admin only. sort_by is restricted to an allowlist of columns."""
    user_store: UserStore = request.app.state.user_store
    users, total = user_store.list_users(
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_dir=sort_dir.value,
        search=search,
        role=role.value if role else None,
    )
    return UserListResponse(
        items=[UserResponse.from_user(u) for u in users],
        pagination=Pagination.build(page, page_size, total),
    )


@router.get("/roles", response_model=list[RoleInfo])
async def list_roles(current_user: User = Depends(get_current_user)) -> list[RoleInfo]:
    return [RoleInfo(name=name, level=level) for name, level in roles.ROLE_HIERARCHY.items()]


@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Create a user account with any role. Admin only."""
    service: AuthService = request.app.state.auth_service
    user = service.create_account(
        body.username,
        body.email,
        body.password,
        role=body.role.value,
        full_name=body.full_name,
        is_active=body.is_active,
    )
    return UserResponse.from_user(user)


# ---------------------------------------------------------------------------
# Single user
# ---------------------------------------------------------------------------


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    _ensure_self_or_admin(current_user, user_id)
    return UserResponse.from_user(_get_user_or_404(request.app.state.user_store, user_id))


@router.get("/{user_id}/has-role/{role}", response_model=HasRoleResponse)
def user_has_role(
    request: Request,
    user_id: int,
    role: str,
    current_user: User = Depends(get_current_user),
) -> HasRoleResponse:
    """True if the user's role is exactly role. Unknown role names answer False."""
    _ensure_self_or_admin(current_user, user_id)
    user = _get_user_or_404(request.app.state.user_store, user_id)
    return HasRoleResponse(user_id=user.id, role=role, has_role=roles.has_role(user, role))


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update a user.

    Admins may change any field on any account. Everyone else may change
    username, email and full_name on their own account only.
    """
    _ensure_self_or_admin(current_user, user_id)
    user_store: UserStore = request.app.state.user_store
    target = _get_user_or_404(user_store, user_id)
    is_admin = current_user.role == roles.ADMIN

    if not is_admin and (body.role is not None or body.is_active is not None):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only admins can change role or active status."},
        )

    updates: dict = {}
    if body.username is not None and body.username != target.username:
        if user_store.username_exists(body.username, exclude_id=user_id):
            raise HTTPException(
                status_code=409,
                detail={"code": "username_taken", "message": "Username already exists."},
            )
        updates["username"] = body.username
    if body.email is not None and body.email.lower() != target.email.lower():
        if user_store.email_exists(body.email, exclude_id=user_id):
            raise HTTPException(
                status_code=409,
                detail={"code": "email_taken", "message": "Email already exists."},
            )
        updates["email"] = body.email
    if body.full_name is not None:
        updates["full_name"] = body.full_name

    if body.role is not None and body.role.value != target.role:
        if target.id == current_user.id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_demotion", "message": "You cannot change your own role."},
            )
        if _is_last_active_admin(user_store, target):
            raise HTTPException(
                status_code=400,
                detail={"code": "last_admin", "message": "Cannot demote the last active admin account."},
            )
        updates["role"] = body.role.value

    if body.is_active is not None and body.is_active != target.is_active:
        if not body.is_active:
            if target.id == current_user.id:
                raise HTTPException(
                    status_code=400,
                    detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
                )
            if _is_last_active_admin(user_store, target):
                raise HTTPException(
                    status_code=400,
                    detail={"code": "last_admin", "message": "Cannot deactivate the last active admin account."},
                )
        updates["is_active"] = body.is_active

    if updates:
        try:
            user_store.update_user(user_id, **updates)
        except IntegrityError as exc:
            raise HTTPException(
                status_code=409,
                detail={"code": "conflict", "message": "Username or email already exists."},
            ) from exc
        if updates.get("is_active") is False:
            # A deactivated account keeps no live sessions.
            user_store.revoke_all_refresh_tokens(user_id)

    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.delete("/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    """Delete a user permanently. Admin only. Audit rows are kept, unlinked."""
    user_store: UserStore = request.app.state.user_store
    target = _get_user_or_404(user_store, user_id)
    if target.id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_delete", "message": "You cannot delete your own account."},
        )
    if _is_last_active_admin(user_store, target):
        raise HTTPException(
            status_code=400,
            detail={"code": "last_admin", "message": "Cannot delete the last active admin account."},
        )
    user_store.delete_user(user_id)
    return Response(status_code=204)


@router.post("/{user_id}/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    user_id: int,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Change a password. The current password is required, even for admins.

    Every session of the account is ended; the caller must log in again if
    they changed their own password.
    """
    _ensure_self_or_admin(current_user, user_id)
    service: AuthService = request.app.state.auth_service
    target = _get_user_or_404(service.store, user_id)
    service.change_password(target, body.current_password, body.new_password, client_info(request))
    return MessageResponse(message="Password changed. Please log in again.")
