"""
core/config.py -- VRC CMS settings, read from the environment by pydantic-settings.

Every tunable the API, the CLI and the background cleanup task use lives on
Settings. Modules call get_settings() and never read os.environ themselves.

  get_settings() is lru_cached, so the environment is read once per process.
  Tests set their variables before the first import for that reason.

  Names map to upper-case variables: access_token_expire_seconds is read
  from ACCESS_TOKEN_EXPIRE_SECONDS. ALLOWED_HOSTS and CORS_ORIGINS take JSON
  arrays. A .env file next to the working directory is honoured.

  DATABASE_URL is any SQLAlchemy URL. The default is a SQLite file beside
  the project; PostgreSQL or MySQL only need a different URL and driver.

SECRET_KEY signs access tokens and keys the HMAC over refresh and reset
tokens. It must be at least 32 characters. With DEBUG=true a random key is
generated when none is set; otherwise startup fails.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or content/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("vrccms.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'vrc_cms.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 7200
    refresh_token_expire_days: int = 7
    reset_token_expire_hours: int = 24
    token_cleanup_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://localhost:5173"]
    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    comment_rate_limit: str = "20/minute"
    reset_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Registration and bootstrap
    # ------------------------------------------------------------------

    self_registration_enabled: bool = False
    default_admin_username: str = "admin"
    default_admin_email: str = "admin@example.com"
    # Empty means "do not seed an admin on first start".
    default_admin_password: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Issued tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
