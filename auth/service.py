"""
auth/service.py -- Session and credential workflows.

AuthService is a facade over UserStore + token utilities + ResetDelivery.
Route handlers call one method per request and translate AuthError into the
standard error envelope (see api/main.py). Nothing here knows about HTTP
except the status_code carried on AuthError.

Session model:
  access token  -- short-lived JWT. Killed early by the jti deny list (logout)
                   or by bumping users.token_version (logout-all, password
                   change, password reset).
  refresh token -- opaque, stored as an HMAC hash, rotated on every use.
                   Presenting an already-rotated token is treated as theft:
                   every session of that user is revoked.

Every outcome that matters for an incident review is written to auth_logs
and to the "vrccms.auth" logger. Raw tokens and passwords are never logged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth import roles
from auth.delivery import LogResetDelivery, ResetDelivery
from auth.models import AuthLogEntry, ClientInfo, PasswordResetToken, RefreshToken, TokenPair, User
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    generate_opaque_token,
    hash_password,
    hash_token,
    password_problems,
    token_expiry,
    token_matches,
    verify_password,
)
from core.config import Settings, get_settings
from core.db import iso_utc

logger = logging.getLogger("vrccms.auth")

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."


class AuthError(Exception):
    """A credential or session failure with an HTTP status attached."""

    def __init__(self, code: str, message: str, status_code: int = 400, detail: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.detail = detail


def check_password_strength(plain: str) -> None:
    """Raise AuthError(weak_password) if plain breaks any complexity rule."""
    problems = password_problems(plain)
    if problems:
        raise AuthError("weak_password", "Password does not meet complexity requirements.", 400, " ".join(problems))


class AuthService:
    def __init__(self, store: UserStore, delivery: ResetDelivery | None = None, settings: Settings | None = None):
        self.store = store
        self.delivery = delivery or LogResetDelivery()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(
        self,
        username: str,
        email: str,
        password: str,
        role: str = roles.DEFAULT_ROLE,
        full_name: str | None = None,
        is_active: bool = True,
    ) -> User:
        """Create a user after complexity and uniqueness checks.

        Shared by self-registration, admin user creation, the CLI and the
        startup admin seed.
        """
        check_password_strength(password)
        if not roles.is_valid_role(role):
            raise AuthError("invalid_role", f"Unknown role: {role}.", 400)
        if self.store.username_exists(username):
            raise AuthError("username_taken", "Username already exists.", 409)
        if self.store.email_exists(email):
            raise AuthError("email_taken", "Email already exists.", 409)
        user = User(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            role=role,
            full_name=full_name,
            is_active=is_active,
        )
        try:
            user_id = self.store.create_user(user)
        except IntegrityError as exc:
            # Lost a race against a concurrent insert of the same name/email.
            raise AuthError("conflict", "Username or email already exists.", 409) from exc
        return self.store.get_by_id(user_id)

    def ensure_default_admin(self) -> User | None:
        """Seed the configured admin account on an empty database.

        Does nothing (returns None) when users already exist or no
        DEFAULT_ADMIN_PASSWORD is configured.
        """
        if self.store.has_users() or not self.settings.default_admin_password:
            return None
        admin = self.create_account(
            self.settings.default_admin_username,
            self.settings.default_admin_email,
            self.settings.default_admin_password,
            role=roles.ADMIN,
            full_name="Administrator",
        )
        logger.info("Seeded default admin account %r", admin.username)
        return admin

    # ------------------------------------------------------------------
    # Login / registration
    # ------------------------------------------------------------------

    def login(self, identifier: str, password: str, client: ClientInfo | None = None) -> tuple[User, TokenPair]:
        """Verify credentials and open a new session.

        The error is identical for unknown user, wrong password and inactive
        account so the response does not reveal which one it was.
        """
        client = client or ClientInfo()
        user = authenticate_user(self.store, identifier, password)
        if user is None:
            known = self.store.get_by_identifier(identifier)
            self._audit(
                "login_failed",
                False,
                user=known,
                username=identifier,
                details="inactive account" if known and not known.is_active else "invalid credentials",
                client=client,
            )
            raise AuthError("bad_credentials", "Invalid username or password.", 401)

        pair = self._issue_tokens(user, client)
        self.store.update_last_login(user.id)
        self._audit("login", True, user=user, client=client)
        return self.store.get_by_id(user.id), pair

    def register(
        self,
        username: str,
        email: str,
        password: str,
        full_name: str | None = None,
        client: ClientInfo | None = None,
    ) -> tuple[User, TokenPair]:
        """Self-registration. Always creates a customer."""
        client = client or ClientInfo()
        if not self.settings.self_registration_enabled:
            raise AuthError("registration_disabled", "Self-registration is disabled.", 403)
        user = self.create_account(username, email, password, role=roles.CUSTOMER, full_name=full_name)
        pair = self._issue_tokens(user, client)
        self._audit("register", True, user=user, client=client)
        return user, pair

    # ------------------------------------------------------------------
    # Refresh rotation
    # ------------------------------------------------------------------

    def refresh(self, raw_refresh: str, client: ClientInfo | None = None) -> tuple[User, TokenPair]:
        """Exchange a refresh token for a new access + refresh pair.

        The presented token is revoked in the same transaction that stores
        its successor, so a token can be redeemed at most once.
        """
        client = client or ClientInfo()
        stored = self.store.get_refresh_token(hash_token(raw_refresh))
        if stored is None or not token_matches(raw_refresh, stored.token_hash):
            raise AuthError("invalid_refresh_token", "Invalid refresh token.", 401)

        if stored.is_revoked:
            self._handle_reuse(stored, client)
            raise AuthError("invalid_refresh_token", "Refresh token has been revoked.", 401)

        if stored.expires_at <= iso_utc():
            raise AuthError("refresh_token_expired", "Refresh token has expired.", 401)

        user = self.store.get_by_id(stored.user_id)
        if user is None or not user.is_active:
            self.store.revoke_refresh_token(stored.id)
            raise AuthError("invalid_refresh_token", "Account is not active.", 401)

        raw_new, new_token = self._new_refresh_token(user, client)
        new_id = self.store.rotate_refresh_token(stored.id, new_token)
        if new_id is None:
            # Another request rotated this token between our read and write.
            self._handle_reuse(stored, client)
            raise AuthError("invalid_refresh_token", "Refresh token has been revoked.", 401)

        access = create_access_token(user.id, user.username, user.role, user.token_version)
        self._audit("refresh", True, user=user, client=client)
        return user, TokenPair(access, raw_new, self.settings.access_token_expire_seconds)

    def _handle_reuse(self, stored: RefreshToken, client: ClientInfo) -> None:
        revoked = self.store.revoke_all_refresh_tokens(stored.user_id)
        user = self.store.get_by_id(stored.user_id)
        logger.warning("Refresh token reuse for user_id=%s; revoked %d session(s)", stored.user_id, revoked)
        self._audit(
            "refresh_reuse",
            False,
            user=user,
            details=f"token_id={stored.id} sessions_revoked={revoked}",
            client=client,
        )

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(
        self,
        user: User,
        payload: dict,
        raw_refresh: str | None = None,
        client: ClientInfo | None = None,
    ) -> None:
        """End the current session.

        The access token's jti goes on the deny list until its natural expiry.
        The refresh token, if supplied, is revoked only if it belongs to user.
        """
        client = client or ClientInfo()
        self.store.revoke_access_token(payload["jti"], user.id, iso_utc(token_expiry(payload)))
        if raw_refresh:
            stored = self.store.get_refresh_token(hash_token(raw_refresh))
            if stored is not None and stored.user_id == user.id:
                self.store.revoke_refresh_token(stored.id, user_id=user.id)
        self._audit("logout", True, user=user, client=client)

    def logout_all(self, user: User, client: ClientInfo | None = None, action: str = "logout_all") -> int:
        """Revoke every session and every outstanding access token of user."""
        client = client or ClientInfo()
        revoked = self.store.revoke_all_refresh_tokens(user.id)
        self.store.bump_token_version(user.id)
        self._audit(action, True, user=user, details=f"sessions_revoked={revoked}", client=client)
        return revoked

    # ------------------------------------------------------------------
    # Password change / reset
    # ------------------------------------------------------------------

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        client: ClientInfo | None = None,
    ) -> None:
        """Set a new password for user. All sessions are ended afterwards."""
        client = client or ClientInfo()
        if not verify_password(current_password, user.hashed_password):
            self._audit("password_change", False, user=user, details="wrong current password", client=client)
            raise AuthError("wrong_password", "Current password is incorrect.", 400)
        check_password_strength(new_password)
        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        self.logout_all(user, client, action="password_change")

    def request_password_reset(self, email: str, client: ClientInfo | None = None) -> str:
        """Issue a reset token for email if it belongs to an active user.

        Always returns RESET_REQUESTED_MESSAGE so callers cannot probe which
        emails are registered.
        """
        client = client or ClientInfo()
        user = self.store.get_by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive email")
            return RESET_REQUESTED_MESSAGE

        self.store.invalidate_reset_tokens(user.id)
        raw = generate_opaque_token()
        expires_at = iso_utc(datetime.now(timezone.utc) + timedelta(hours=self.settings.reset_token_expire_hours))
        self.store.create_reset_token(PasswordResetToken(user_id=user.id, token_hash=hash_token(raw), expires_at=expires_at))
        self.delivery.deliver(user, raw, expires_at)
        self._audit("password_reset_request", True, user=user, client=client)
        return RESET_REQUESTED_MESSAGE

    def validate_reset_token(self, raw: str) -> tuple[PasswordResetToken, User]:
        """Return the token row and its user, or raise AuthError (400)."""
        token = self.store.get_reset_token(hash_token(raw))
        if token is None or token.used or not token_matches(raw, token.token_hash):
            raise AuthError("invalid_token", "Invalid or already used reset token.", 400)
        if token.expires_at <= iso_utc():
            raise AuthError("token_expired", "Reset token has expired.", 400)
        user = self.store.get_by_id(token.user_id)
        if user is None or not user.is_active:
            raise AuthError("invalid_token", "Invalid or already used reset token.", 400)
        return token, user

    def reset_password(self, raw: str, new_password: str, client: ClientInfo | None = None) -> User:
        """Consume a reset token and set a new password."""
        client = client or ClientInfo()
        token, user = self.validate_reset_token(raw)
        check_password_strength(new_password)
        if not self.store.mark_reset_token_used(token.id):
            raise AuthError("invalid_token", "Invalid or already used reset token.", 400)
        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        self.store.invalidate_reset_tokens(user.id)
        self.logout_all(user, client, action="password_reset_complete")
        return self.store.get_by_id(user.id)

    # ------------------------------------------------------------------
    # Maintenance / introspection
    # ------------------------------------------------------------------

    def cleanup_expired(self) -> dict[str, int]:
        counts = {
            "refresh_tokens": self.store.cleanup_expired_refresh_tokens(),
            "revoked_tokens": self.store.cleanup_expired_revoked_tokens(),
            "reset_tokens": self.store.cleanup_reset_tokens(),
        }
        logger.info(
            "Token cleanup: %d refresh, %d revoked, %d reset",
            counts["refresh_tokens"],
            counts["revoked_tokens"],
            counts["reset_tokens"],
        )
        return counts

    def active_sessions(self, user_id: int) -> list[RefreshToken]:
        return self.store.list_active_refresh_tokens(user_id)

    def auth_history(self, user_id: int, limit: int = 50) -> list[AuthLogEntry]:
        return self.store.get_auth_history(user_id, limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_refresh_token(self, user: User, client: ClientInfo) -> tuple[str, RefreshToken]:
        raw = generate_opaque_token()
        expires_at = iso_utc(datetime.now(timezone.utc) + timedelta(days=self.settings.refresh_token_expire_days))
        token = RefreshToken(
            user_id=user.id,
            token_hash=hash_token(raw),
            expires_at=expires_at,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
        )
        return raw, token

    def _issue_tokens(self, user: User, client: ClientInfo) -> TokenPair:
        raw_refresh, refresh = self._new_refresh_token(user, client)
        self.store.save_refresh_token(refresh)
        access = create_access_token(user.id, user.username, user.role, user.token_version)
        return TokenPair(access, raw_refresh, self.settings.access_token_expire_seconds)

    def _audit(
        self,
        action: str,
        success: bool,
        user: User | None = None,
        username: str | None = None,
        details: str | None = None,
        client: ClientInfo | None = None,
    ) -> None:
        client = client or ClientInfo()
        name = user.username if user is not None else username
        level = logging.INFO if success else logging.WARNING
        logger.log(level, "auth %s success=%s user=%r ip=%s", action, success, name, client.ip_address)
        self.store.log_auth_event(
            AuthLogEntry(
                action=action,
                success=success,
                user_id=user.id if user is not None else None,
                username=name,
                details=details,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            )
        )
