"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in content/models.py -- dataclasses own domain shape; stores and the service
do the work.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A CMS account.

    hashed_password is a bcrypt hash and never leaves the auth layer.

    token_version is embedded in every access token as the "ver" claim.
    Bumping it (logout-all, password change, password reset) invalidates every
    access token issued before the bump without touching the deny list.
    """

    username: str
    email: str
    hashed_password: str
    role: str = "customer"  # "admin", "editor", "customer"
    id: int | None = None
    full_name: str | None = None
    is_active: bool = True
    token_version: int = 0
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class RefreshToken:
    """A stored refresh token (one per login session).

    Only token_hash is persisted. The raw token is returned to the client once
    at issue time. replaced_by_id links a rotated token to its successor so
    the session chain can be audited.
    """

    user_id: int
    token_hash: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None
    last_used_at: str | None = None
    is_revoked: bool = False
    revoked_at: str | None = None
    replaced_by_id: int | None = None
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass
class PasswordResetToken:
    """A single-use, time-limited credential for setting a new password."""

    user_id: int
    token_hash: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None
    used: bool = False
    used_at: str | None = None


@dataclass
class AuthLogEntry:
    """One row of the authentication audit trail. Insert-only."""

    action: str  # "login", "login_failed", "logout", "refresh", ...
    success: bool
    user_id: int | None = None
    username: str | None = None
    details: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class ClientInfo:
    """Request metadata recorded alongside sessions and audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class TokenPair:
    """What a successful login, registration or refresh hands back."""

    access_token: str
    refresh_token: str
    expires_in: int
