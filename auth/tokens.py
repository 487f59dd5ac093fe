"""
auth/tokens.py -- JWT, password hashing, and opaque token utilities.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY and
       carry user_id, username, role, token version, a unique jti and expiry.
       Verification returns None on any failure -- the dependency layer turns
       that into a 401. The jti is what logout writes to the deny list.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username or email exists.

  Opaque tokens (refresh + password reset): secrets.token_hex(32) gives 256
       bits of entropy. Only HMAC-SHA256(SECRET_KEY, raw) is stored, so a
       leaked database does not hand out live sessions or reset links, and
       lookup stays O(1) by hash. bcrypt's slowness is unnecessary here.

Layer rule: no imports from api/ or content/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("vrccms.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?`~]")

# bcrypt only accepts the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt rejects input over 72 bytes; password_problems enforces that limit
    before anything reaches here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("vrccms_timing_dummy")


def password_problems(plain: str) -> list[str]:
    """Return the complexity rules this password breaks. Empty list = acceptable."""
    problems: list[str] = []
    if len(plain) < 8:
        problems.append("Password must be at least 8 characters long.")
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        problems.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long.")
    if not re.search(r"[A-Z]", plain):
        problems.append("Password must contain an uppercase letter.")
    if not re.search(r"[a-z]", plain):
        problems.append("Password must contain a lowercase letter.")
    if not re.search(r"[0-9]", plain):
        problems.append("Password must contain a digit.")
    if not _SPECIAL_CHARS.search(plain):
        problems.append("Password must contain a special character.")
    return problems


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: int,
    username: str,
    role: str,
    token_version: int = 0,
    expire_seconds: int = 0,
) -> str:
    """Encode a signed access token.

    Args:
        user_id:        Numeric user ID stored in the DB.
        username:       Stored as the JWT subject claim.
        role:           "admin", "editor" or "customer".
        token_version:  The user's current token_version; a later bump makes
                        this token unusable.
        expire_seconds: Lifetime in seconds. 0 (default) uses
                        Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": username,
        "user_id": user_id,
        "role": role,
        "ver": token_version,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not {"user_id", "role", "jti", "exp"} <= payload.keys():
        return None
    return payload


def token_expiry(payload: dict) -> datetime:
    """Return the exp claim of a decoded payload as an aware datetime."""
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


# ---------------------------------------------------------------------------
# Opaque tokens (refresh, password reset)
# ---------------------------------------------------------------------------


def generate_opaque_token() -> str:
    """Return 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)


def hash_token(raw: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw) as a hex string.

    Deterministic, so the store can look tokens up by hash. Keyed, so an
    attacker holding the DB cannot confirm guesses without SECRET_KEY.
    """
    return hmac.new(_settings.secret_key.encode(), raw.encode(), hashlib.sha256).hexdigest()


def token_matches(raw: str, stored_hash: str) -> bool:
    """Constant-time comparison of a presented token against a stored hash."""
    return hmac.compare_digest(hash_token(raw), stored_hash)


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, identifier: str, password: str) -> User | None:
    """Authenticate by username or email with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown identifier: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure (including inactive).
    """
    user = store.get_by_identifier(identifier)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user
