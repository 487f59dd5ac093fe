"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as content/store.py).
UserStore is the repository; the _row_to_* functions are the mappers.
Route, dependency and service code never touches SQL directly.

Tables:
  users                 -- accounts; username and email are UNIQUE
  refresh_tokens        -- one row per login session, hashed token only
  revoked_tokens        -- access-token deny list keyed by JWT jti
  password_reset_tokens -- hashed single-use reset credentials
  auth_logs             -- insert-only audit trail

Security:
  All queries use bound parameters. No f-strings in SQL. Sort columns for
  list_users() come from an allowlist, never from raw input.

Timestamps are ISO 8601 UTC strings produced by core.db.iso_utc(). They share one
format so string comparison in SQL matches chronological order.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import AuthLogEntry, PasswordResetToken, RefreshToken, User
from auth.roles import normalize_role
from core.config import get_settings
from core.db import iso_utc, make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", String(255), nullable=False),
    Column("full_name", String(255)),
    Column("role", String(50), nullable=False, server_default="customer"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("last_used_at", String(32)),
    Column("is_revoked", Integer, nullable=False, server_default="0"),
    Column("revoked_at", String(32)),
    Column("replaced_by_id", Integer),
    Column("user_agent", String(512)),
    Column("ip_address", String(45)),
    Index("ix_refresh_tokens_user", "user_id"),
    Index("ix_refresh_tokens_expiry", "expires_at"),
)

_revoked_tokens = Table(
    "revoked_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("jti", String(64), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("expires_at", String(32), nullable=False),
    Column("revoked_at", String(32), nullable=False),
    Index("ix_revoked_tokens_expiry", "expires_at"),
)

_reset_tokens = Table(
    "password_reset_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("token_hash", String(64), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("used_at", String(32)),
    Index("ix_password_reset_tokens_hash", "token_hash"),
)

_auth_logs = Table(
    "auth_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("username", String(255)),
    Column("action", String(50), nullable=False),
    Column("success", Integer, nullable=False, server_default="0"),
    Column("details", String(1000)),
    Column("ip_address", String(45)),
    Column("user_agent", String(512)),
    Column("created_at", String(32), nullable=False),
    Index("ix_auth_logs_user", "user_id"),
    Index("ix_auth_logs_action", "action", "created_at"),
)

# Columns GET /users may sort by. Anything else falls back to created_at.
_USER_SORT_COLUMNS = {
    "id": _users.c.id,
    "username": _users.c.username,
    "email": _users.c.email,
    "full_name": _users.c.full_name,
    "role": _users.c.role,
    "created_at": _users.c.created_at,
    "last_login": _users.c.last_login,
}

# Fields update_user() accepts. Keeps callers from writing id/created_at.
_USER_MUTABLE_FIELDS = {"username", "email", "hashed_password", "full_name", "role", "is_active", "last_login"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, sessions, revoked tokens, reset tokens and auth logs.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="admin", email="a@x.io", hashed_password=hash_password("...")))
        user = store.get_by_identifier("a@x.io")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers check username_exists()/email_exists() first for a
        precise message and catch IntegrityError for the concurrent case.
        """
        now = iso_utc()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    full_name=user.full_name,
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    token_version=user.token_version,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_identifier(self, identifier: str) -> User | None:
        """Username first, then email -- the login form accepts either."""
        return self.get_by_username(identifier) or self.get_by_email(identifier)

    def username_exists(self, username: str, exclude_id: int | None = None) -> bool:
        query = select(_users.c.id).where(_users.c.username == username)
        if exclude_id is not None:
            query = query.where(_users.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).first() is not None

    def email_exists(self, email: str, exclude_id: int | None = None) -> bool:
        query = select(_users.c.id).where(func.lower(_users.c.email) == email.lower())
        if exclude_id is not None:
            query = query.where(_users.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).first() is not None

    def list_users(
        self,
        page: int = 1,
        page_size: int = 10,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        search: str | None = None,
        role: str | None = None,
    ) -> tuple[list[User], int]:
        """Return one page of users plus the total number of matches.

        search matches username, email or full_name (substring, case-insensitive).
        """
        conditions = []
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(_users.c.username).like(pattern),
                    func.lower(_users.c.email).like(pattern),
                    func.lower(_users.c.full_name).like(pattern),
                )
            )
        if role:
            conditions.append(_users.c.role == role)

        sort_col = _USER_SORT_COLUMNS.get(sort_by, _users.c.created_at)
        order = sort_col.asc() if sort_dir.lower() == "asc" else sort_col.desc()

        query = _users.select().where(*conditions).order_by(order, _users.c.id)
        query = query.limit(page_size).offset((page - 1) * page_size)
        count_query = select(func.count()).select_from(_users).where(*conditions)

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows], total

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Unknown field names raise ValueError. is_active must be passed as bool.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = iso_utc()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=iso_utc()))
            conn.commit()

    def bump_token_version(self, user_id: int) -> None:
        """Invalidate every access token issued to this user so far."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(token_version=_users.c.token_version + 1, updated_at=iso_utc())
            )
            conn.commit()

    def count_active_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where((_users.c.role == "admin") & (_users.c.is_active == 1))
            ).scalar()
        return result or 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user and the rows that reference it.

        Sessions, deny-list rows and reset tokens are deleted; audit log rows
        are kept with user_id set to NULL. Last-admin checks are the caller's
        responsibility.
        """
        with self.engine.connect() as conn:
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.user_id == user_id))
            conn.execute(_reset_tokens.delete().where(_reset_tokens.c.user_id == user_id))
            conn.execute(_auth_logs.update().where(_auth_logs.c.user_id == user_id).values(user_id=None))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def save_refresh_token(self, token: RefreshToken) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.insert().values(**_refresh_values(token)))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_refresh_token(self, token_hash: str) -> RefreshToken | None:
        """Look up a refresh token by hash regardless of state."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_refresh(row) if row is not None else None

    def rotate_refresh_token(self, old_id: int, new_token: RefreshToken) -> int | None:
        """Atomically revoke old_id and insert its successor.

        Returns the new token's ID, or None if old_id was already revoked
        (a concurrent rotation won the race) -- the caller treats that as reuse.
        """
        now = iso_utc()
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.id == old_id) & (_refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1, revoked_at=now, last_used_at=now)
            )
            if result.rowcount == 0:
                return None
            new_id = conn.execute(_refresh_tokens.insert().values(**_refresh_values(new_token))).inserted_primary_key[0]
            conn.execute(
                _refresh_tokens.update().where(_refresh_tokens.c.id == old_id).values(replaced_by_id=new_id)
            )
        return new_id

    def revoke_refresh_token(self, token_id: int, user_id: int | None = None) -> bool:
        """Revoke one session. If user_id is given it must own the token."""
        condition = (_refresh_tokens.c.id == token_id) & (_refresh_tokens.c.is_revoked == 0)
        if user_id is not None:
            condition = condition & (_refresh_tokens.c.user_id == user_id)
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.update().where(condition).values(is_revoked=1, revoked_at=iso_utc()))
            conn.commit()
        return result.rowcount > 0

    def revoke_all_refresh_tokens(self, user_id: int) -> int:
        """Revoke every live session for a user. Returns how many were revoked."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1, revoked_at=iso_utc())
            )
            conn.commit()
        return result.rowcount

    def list_active_refresh_tokens(self, user_id: int) -> list[RefreshToken]:
        """Unrevoked, unexpired sessions, most recently used first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.is_revoked == 0)
                    & (_refresh_tokens.c.expires_at > iso_utc())
                )
                .order_by(func.coalesce(_refresh_tokens.c.last_used_at, _refresh_tokens.c.created_at).desc())
            ).fetchall()
        return [_row_to_refresh(r) for r in rows]

    def cleanup_expired_refresh_tokens(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < iso_utc()))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Access-token deny list
    # ------------------------------------------------------------------

    def revoke_access_token(self, jti: str, user_id: int | None, expires_at: str) -> None:
        """Add a jti to the deny list. Revoking twice is a no-op."""
        with self.engine.connect() as conn:
            exists = conn.execute(select(_revoked_tokens.c.id).where(_revoked_tokens.c.jti == jti)).first()
            if exists is None:
                conn.execute(
                    _revoked_tokens.insert().values(jti=jti, user_id=user_id, expires_at=expires_at, revoked_at=iso_utc())
                )
                conn.commit()

    def is_token_revoked(self, jti: str) -> bool:
        with self.engine.connect() as conn:
            return conn.execute(select(_revoked_tokens.c.id).where(_revoked_tokens.c.jti == jti)).first() is not None

    def cleanup_expired_revoked_tokens(self) -> int:
        """Deny-list rows are useless once the JWT itself has expired."""
        with self.engine.connect() as conn:
            result = conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.expires_at < iso_utc()))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, token: PasswordResetToken) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.insert().values(
                    user_id=token.user_id,
                    token_hash=token.token_hash,
                    expires_at=token.expires_at,
                    created_at=token.created_at or iso_utc(),
                    used=1 if token.used else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_reset_token(self, token_hash: str) -> PasswordResetToken | None:
        """Return the newest token with this hash, used or not."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash).order_by(_reset_tokens.c.id.desc())
            ).fetchone()
        return _row_to_reset(row) if row is not None else None

    def mark_reset_token_used(self, token_id: int) -> bool:
        """Flip used 0 -> 1. Returns False if another request already used it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where((_reset_tokens.c.id == token_id) & (_reset_tokens.c.used == 0))
                .values(used=1, used_at=iso_utc())
            )
            conn.commit()
        return result.rowcount == 1

    def invalidate_reset_tokens(self, user_id: int) -> int:
        """Mark every outstanding reset token for a user as used."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where((_reset_tokens.c.user_id == user_id) & (_reset_tokens.c.used == 0))
                .values(used=1, used_at=iso_utc())
            )
            conn.commit()
        return result.rowcount

    def delete_reset_tokens_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def cleanup_reset_tokens(self) -> int:
        """Delete reset tokens that are expired or already used."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.delete().where((_reset_tokens.c.expires_at < iso_utc()) | (_reset_tokens.c.used == 1))
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def log_auth_event(self, entry: AuthLogEntry) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _auth_logs.insert().values(
                    user_id=entry.user_id,
                    username=entry.username,
                    action=entry.action,
                    success=1 if entry.success else 0,
                    details=(entry.details or "")[:1000] or None,
                    ip_address=entry.ip_address,
                    user_agent=(entry.user_agent or "")[:512] or None,
                    created_at=iso_utc(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_auth_history(self, user_id: int, limit: int = 50) -> list[AuthLogEntry]:
        """Newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _auth_logs.select()
                .where(_auth_logs.c.user_id == user_id)
                .order_by(_auth_logs.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_log(r) for r in rows]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def table_counts(self) -> dict[str, int]:
        """Row count per auth table, for the admin database status endpoint."""
        counts: dict[str, int] = {}
        with self.engine.connect() as conn:
            for table in metadata.sorted_tables:
                counts[table.name] = conn.execute(select(func.count()).select_from(table)).scalar() or 0
        return counts

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _refresh_values(token: RefreshToken) -> dict:
    return {
        "user_id": token.user_id,
        "token_hash": token.token_hash,
        "expires_at": token.expires_at,
        "created_at": token.created_at or iso_utc(),
        "is_revoked": 1 if token.is_revoked else 0,
        "user_agent": (token.user_agent or "")[:512] or None,
        "ip_address": token.ip_address,
    }


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        full_name=row.full_name,
        # Unknown role names read as the default role.
        role=normalize_role(row.role),
        is_active=bool(row.is_active),
        token_version=row.token_version,
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_refresh(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        is_revoked=bool(row.is_revoked),
        revoked_at=row.revoked_at,
        replaced_by_id=row.replaced_by_id,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
    )


def _row_to_reset(row) -> PasswordResetToken:
    return PasswordResetToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
        used=bool(row.used),
        used_at=row.used_at,
    )


def _row_to_log(row) -> AuthLogEntry:
    return AuthLogEntry(
        id=row.id,
        user_id=row.user_id,
        username=row.username,
        action=row.action,
        success=bool(row.success),
        details=row.details,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
