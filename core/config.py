"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Reviewdesk happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. DEBUG decides whether a missing SECRET_KEY is generated or
      fatal, and whether a reduced bcrypt cost is allowed.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key makes forged session tokens cheaper.

  BCRYPT_ROUNDS below 12 is refused outside DEBUG. The test suite lowers it
  to keep hashing fast; production never runs with a cheap work factor.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
invites/, submissions/, or notify/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("reviewdesk.config")

_MIN_BCRYPT_ROUNDS = 12


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    app_name: str = "Reviewdesk"
    # Empty means the SQLite file next to core/db.py.
    database_url: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # Absolute lifetime of an interactive session token. No refresh.
    token_expire_seconds: int = 24 * 3600
    # Session records older than this are gone, whatever the token says.
    session_retention_days: int = 30
    max_sessions_per_account: int = 10
    session_reap_interval_seconds: int = 6 * 3600

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = _MIN_BCRYPT_ROUNDS
    max_login_attempts: int = 5
    lockout_seconds: int = 15 * 60
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Invites
    # ------------------------------------------------------------------

    invite_ttl_seconds: int = 24 * 3600
    # Hour of day (UTC) at which the daily expiry sweep runs.
    invite_sweep_hour_utc: int = 0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    # Public intake endpoint; login has its own limit above.
    submission_rate_limit: str = "20/minute"

    # ------------------------------------------------------------------
    # Mail (empty smtp_host means mail is previewed in the log only)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    mail_from: str = ""

    # ------------------------------------------------------------------
    # First-run seeding (main.py seed-admin)
    # ------------------------------------------------------------------

    initial_admin_email: str = ""
    initial_admin_password: str = ""
    initial_admin_name: str = "Owner"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_bcrypt_rounds(self) -> "Settings":
        """Refuse a bcrypt cost below 12 unless DEBUG is on."""
        if self.bcrypt_rounds < _MIN_BCRYPT_ROUNDS and not self.debug:
            raise ValueError(f"BCRYPT_ROUNDS must be at least {_MIN_BCRYPT_ROUNDS} in production mode.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
