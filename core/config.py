"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for webbase happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, session_ttl_seconds -> SESSION_TTL_SECONDS).

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. SECRET_KEY handling is DEBUG-conditional; pool sizes and the
      session refresh threshold are checked against each other.

Security notes:
  SECRET_KEY only signs the session cookie (sign_session_cookies=True). The
  session itself lives server-side, so rotating the key logs everyone out but
  never exposes session data. Keys shorter than 32 chars are rejected.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, or catalog/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("webbase.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'webbase.db'}"


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    db_pool_min_size: int = 5
    db_pool_max_size: int = 20
    db_query_timeout_seconds: float = 8.0

    # ------------------------------------------------------------------
    # Sessions and cookies
    # ------------------------------------------------------------------

    session_cookie_name: str = "session"
    session_ttl_seconds: int = 86400
    # 0 means "half the TTL". A session is pushed out to a full TTL again
    # once less than this many seconds remain.
    session_refresh_threshold_seconds: int = 0
    session_purge_interval_seconds: int = 3600
    sign_session_cookies: bool = True
    secure_cookies: bool = False
    cookie_samesite: Literal["lax", "strict"] = "lax"

    csrf_header_name: str = "X-CSRF-Token"
    csrf_form_field: str = "csrf_token"

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    username_case_sensitive: bool = False
    password_min_length: int = 8
    password_max_length: int = 1024

    # argon2id cost parameters (argon2-cffi RFC 9106 low-memory profile).
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536  # KiB
    argon2_parallelism: int = 4

    # ------------------------------------------------------------------
    # Registration and rate limiting
    # ------------------------------------------------------------------

    self_registration_enabled: bool = False
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Enforce SECRET_KEY policy and basic sanity of numeric settings.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Signed cookies will not survive a restart -- acceptable locally.

        Production mode: refuse to start if SECRET_KEY is missing while
            cookie signing is on.
        """
        if not self.secret_key and self.sign_session_cookies:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if self.secret_key and len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.db_pool_min_size < 1 or self.db_pool_max_size < self.db_pool_min_size:
            raise ValueError("DB_POOL_MAX_SIZE must be >= DB_POOL_MIN_SIZE >= 1.")
        if self.session_ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive.")
        if self.session_refresh_threshold_seconds > self.session_ttl_seconds:
            raise ValueError("SESSION_REFRESH_THRESHOLD_SECONDS cannot exceed SESSION_TTL_SECONDS.")
        if self.password_min_length < 1 or self.password_max_length < self.password_min_length:
            raise ValueError("PASSWORD_MAX_LENGTH must be >= PASSWORD_MIN_LENGTH >= 1.")
        return self

    @property
    def session_refresh_threshold(self) -> int:
        """Effective refresh threshold in seconds (0 resolves to half the TTL)."""
        return self.session_refresh_threshold_seconds or self.session_ttl_seconds // 2


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
