"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Threadline happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. redis_url -> REDIS_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Used to force Secure cookies outside development mode and to
      reject nonsensical lifetimes.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("threadline.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'threadline_auth.db'}"

_DAY = 60 * 60 * 24


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
    database_url: str = _DEFAULT_DB_URL
    # Empty string means "no Redis": reset tokens fall back to the SQL store.
    redis_url: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "qid"
    # 10 years, renewed on every response (rolling, not absolute).
    session_max_age_seconds: int = 10 * 365 * _DAY

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    reset_token_ttl_seconds: int = 3 * _DAY
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Mail (SMTP disabled when smtp_host is empty -- links are logged instead)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "Threadline <no-reply@threadline.local>"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # JSON list in the environment, e.g. ALLOWED_HOSTS='["forum.example.com"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    forgot_password_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_cookie_policy(self) -> "Settings":
        """Enforce the session cookie policy.

        Production mode (DEBUG=false or not set): the session cookie is always
            sent with the Secure flag. A missing SECURE_COOKIES=true is
            corrected with a warning rather than a startup failure.

        Both modes: lifetimes must be positive.
        """
        if not self.debug and not self.secure_cookies:
            logger.warning("SECURE_COOKIES forced on outside development mode.")
            self.secure_cookies = True
        if self.session_max_age_seconds <= 0:
            raise ValueError("SESSION_MAX_AGE_SECONDS must be positive.")
        if self.reset_token_ttl_seconds <= 0:
            raise ValueError("RESET_TOKEN_TTL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
