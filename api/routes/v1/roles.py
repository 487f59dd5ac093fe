"""
api/routes/v1/roles.py -- Role catalogue endpoints.

Routes:
  GET /api/v1/roles                  -- role names and privilege levels (public)
  GET /api/v1/roles/defaults         -- role constants and the default role (public)
  GET /api/v1/roles/validate/{role}  -- is this a known role? (requires auth)
  GET /api/v1/roles/{role}/users     -- users holding a role, paginated (admin only)

Roles are fixed in auth/roles.py; there is no endpoint to create one.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import Pagination, RoleInfo, RoleValidateResponse, UserListResponse, UserResponse
from auth import roles
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from auth.store import UserStore

router = APIRouter(prefix="/roles")


@router.get("", response_model=list[RoleInfo])
async def list_roles() -> list[RoleInfo]:
    return [RoleInfo(name=name, level=level) for name, level in roles.ROLE_HIERARCHY.items()]


@router.get("/defaults")
async def role_defaults() -> dict[str, str]:
    return {**roles.DEFAULT_ROLES, "DEFAULT": roles.DEFAULT_ROLE}


@router.get("/validate/{role}", response_model=RoleValidateResponse)
async def validate_role(role: str, current_user: User = Depends(get_current_user)) -> RoleValidateResponse:
    return RoleValidateResponse(role=role, valid=roles.is_valid_role(role))


@router.get("/{role}/users", response_model=UserListResponse)
def users_with_role(
    request: Request,
    role: str,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    current_user: User = Depends(require_admin),
) -> UserListResponse:
    if not roles.is_valid_role(role):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": f"Role '{role}' does not exist."},
        )
    user_store: UserStore = request.app.state.user_store
    users, total = user_store.list_users(page=page, page_size=page_size, sort_by="username", sort_dir="asc", role=role)
    return UserListResponse(
        items=[UserResponse.from_user(u) for u in users],
        pagination=Pagination.build(page, page_size, total),
    )
