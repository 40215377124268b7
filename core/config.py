"""
core/config.py -- AuthWarden settings, read from the environment via pydantic-settings.

Only this module reads environment variables. Everything else calls
get_settings(), which builds Settings once and caches it (lru_cache), the
usual FastAPI way of sharing configuration.

Each field maps to the upper-cased env var of the same name
(lockout_threshold -> LOCKOUT_THRESHOLD); a .env file in the working
directory is read too. Range checks use Field constraints, and the
SECRET_KEY policy is a model_validator that runs after every field is set.

SECRET_KEY signs access tokens and keys the refresh-token digest, so:
  - it must be at least 32 characters;
  - with DEBUG=true a missing key is replaced by a random one (logged as a
    warning). Tokens and stored refresh digests die with the process;
  - otherwise a missing key stops startup. A random production key would
    silently log everybody out on every restart.

Layer rule: core/ imports nothing from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authwarden.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'authwarden.db'}"

_CREDENTIALS_RE = re.compile(r"^(?P<scheme>[^:/]+://)[^@/]+@")


class Settings(BaseSettings):
    """Every tunable of the service. Defaults suit local development; only
    SECRET_KEY (or DEBUG=true) is needed to start.
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
    # "" means unset; validate_secret_key replaces it or raises.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_ttl_seconds: int = Field(default=3600, gt=0)
    refresh_token_ttl_days: int = Field(default=7, gt=0)
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Brute-force protection
    # ------------------------------------------------------------------

    lockout_threshold: int = Field(default=5, gt=0)
    lockout_window_minutes: int = Field(default=15, gt=0)
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    # bcrypt accepts cost factors 4..31. Tests run at 4 to stay fast.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Upper bound on concurrent bcrypt computations (see auth/hasher.py).
    hash_workers: int = Field(default=4, gt=0)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:8080"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Fill in or reject SECRET_KEY (see module docstring)."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set it in the environment or .env, or set DEBUG=true for a throwaway key."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a random one. Issued tokens will not survive a restart.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    def masked_database_url(self) -> str:
        """Return database_url with any user:password section replaced by ***:***.

        Used by startup logging so credentials never reach log files.
        """
        return _CREDENTIALS_RE.sub(r"\g<scheme>***:***@", self.database_url)


@lru_cache
def get_settings() -> Settings:
    """Cached Settings instance. Call get_settings.cache_clear() after changing the environment."""
    return Settings()
