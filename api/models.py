"""
API request and response models for the VRC CMS auth, user and role endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Content, comment and settings models live in api/content_models.py.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from math import ceil
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from auth.models import AuthLogEntry, RefreshToken, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]{3,50}$"
# Deliberately loose: one @, something on each side, a dot in the domain.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt only looks at the first 72 bytes; cap input well before hashing cost matters.
_PASSWORD_MAX = 128


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    editor = "editor"
    customer = "customer"


class SortDirEnum(str, Enum):
    asc = "asc"
    desc = "desc"


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    message: str


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, page_size: int, total: int) -> "Pagination":
        return cls(page=page, page_size=page_size, total=total, total_pages=ceil(total / page_size) if total else 0)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a User. hashed_password and token_version never leave the server."""

    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    role: str
    is_active: bool
    last_login: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UserListResponse(BaseModel):
    items: list[UserResponse]
    pagination: Pagination


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin only).

    Password complexity is checked by the auth service, not here, so the
    client gets the list of unmet rules in one error.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(pattern=USERNAME_PATTERN)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    full_name: Optional[str] = Field(default=None, max_length=255)
    role: RoleEnum = RoleEnum.customer
    is_active: bool = True


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are left unchanged.

    role and is_active are honoured for admins only.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, pattern=USERNAME_PATTERN)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    full_name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class HasRoleResponse(BaseModel):
    user_id: int
    role: str
    has_role: bool


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """username accepts either the account's username or its email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(pattern=USERNAME_PATTERN)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    full_name: Optional[str] = Field(default=None, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=256)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, max_length=256)


class TokenResponse(BaseModel):
    """Returned by login, register and refresh-token."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    user: UserResponse


class LogoutAllResponse(BaseModel):
    message: str
    sessions_revoked: int


class SessionResponse(BaseModel):
    """One active login session. The id is the session row id, never the token."""

    id: int
    created_at: Optional[str]
    last_used_at: Optional[str]
    expires_at: str
    user_agent: Optional[str]
    ip_address: Optional[str]

    @classmethod
    def from_token(cls, token: RefreshToken) -> "SessionResponse":
        return cls(
            id=token.id,
            created_at=token.created_at,
            last_used_at=token.last_used_at,
            expires_at=token.expires_at,
            user_agent=token.user_agent,
            ip_address=token.ip_address,
        )


class AuthLogResponse(BaseModel):
    id: int
    action: str
    success: bool
    details: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: Optional[str]

    @classmethod
    def from_entry(cls, entry: AuthLogEntry) -> "AuthLogResponse":
        return cls(
            id=entry.id,
            action=entry.action,
            success=entry.success,
            details=entry.details,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=entry.created_at,
        )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class ResetRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class ResetValidateResponse(BaseModel):
    valid: bool
    username: str
    expires_at: str


class ResetPasswordRequest(BaseModel):
    """confirm_password is optional; when sent it must match new_password."""

    token: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    confirm_password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("new_password and confirm_password do not match")
        return self


class CleanupResponse(BaseModel):
    refresh_tokens: int
    revoked_tokens: int
    reset_tokens: int


class DeletedCountResponse(BaseModel):
    deleted: int


class DebugTokenRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class DebugTokenResponse(BaseModel):
    email: str
    token: str


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleInfo(BaseModel):
    name: str
    level: int


class RoleValidateResponse(BaseModel):
    role: str
    valid: bool


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class DbStatusResponse(BaseModel):
    """Response for GET /api/v1/system/db-status (admin only)."""

    status: str
    dialect: str
    tables: dict[str, int]
