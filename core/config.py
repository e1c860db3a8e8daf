"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for StashIt happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() once at
startup and pass the Settings instance to the components that need it.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit injection: the cipher (core/crypto.py) and the auth gate
      (auth/tokens.py, auth/service.py) never read configuration themselves.
      api/main.py builds Settings once in the lifespan and hands it over via
      app.state.settings.

  @model_validator(mode="after"): dev mode (DEBUG=true) generates a signing
      key with a warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and, when
  ENCRYPTION_KEY is unset, field encryption both depend on its entropy.

  ENCRYPTION_KEY is optional. When absent the cipher derives its key from
  SECRET_KEY, so rotating SECRET_KEY makes previously stored passwords
  undecryptable. Set ENCRYPTION_KEY explicitly in production.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or vault/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("stashit.config")


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
    encryption_key: str = ""

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    auth_db_url: str = ""  # "" -> auth/stashit_auth.db
    vault_db_url: str = ""  # "" -> vault/stashit_vault.db

    # ------------------------------------------------------------------
    # Google OAuth (empty string means the redirect flow is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    # Chrome extension that receives the session token after the redirect flow.
    extension_id: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def encryption_secret(self) -> str:
        """Secret the field cipher derives its key from (ENCRYPTION_KEY, else SECRET_KEY)."""
        return self.encryption_key or self.secret_key

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Credentials will not survive restart, and neither will passwords
            encrypted under the fallback key.

        Production mode: refuse to start if SECRET_KEY is missing.

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
        if not self.encryption_key:
            logger.info("ENCRYPTION_KEY not set -- field encryption key derived from SECRET_KEY")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
