"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Storefront happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Only the
      transport layer (api/) calls it. Core components (TokenAuthority,
      UserRegistry) receive the Settings object explicitly at construction.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. A missing SECRET_KEY is a fatal startup
      error: the process refuses to start rather than failing per request.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or catalog/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("storefront.config")

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except secret_key has a default so Settings() can be built in
    test environments by exporting SECRET_KEY alone.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `auth_db_url` from AUTH_DB_URL.
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
    # Empty string is the sentinel for "not configured". The validator below
    # raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Access tokens live for a fixed 2 hours from issuance.
    token_expire_seconds: int = 7200
    default_role: str = "User"
    admin_role: str = "admin"
    password_min_length: int = 6
    password_require_complexity: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    auth_db_url: str = f"sqlite:///{_ROOT / 'auth' / 'storefront_auth.db'}"
    catalog_db_url: str = f"sqlite:///{_ROOT / 'catalog' / 'storefront_catalog.db'}"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["*"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    # Cache-Control max-age for read-only listings (seconds).
    category_cache_seconds: int = 30
    user_cache_seconds: int = 30
    default_page_size: int = 5

    # ------------------------------------------------------------------
    # Product images
    # ------------------------------------------------------------------

    placeholder_image_url: str = "https://placehold.co/300x300"
    product_images_dir: str = str(_ROOT / "static" / "ProductsImages")
    max_image_bytes: int = 2 * 1024 * 1024

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to start without a usable signing key.

        The key signs every access token with HMAC-SHA256. A missing key is a
        configuration error for the whole process, so it is raised here at
        startup rather than surfacing on the first login.

        Keys shorter than 32 characters are rejected as well; HS256 relies on
        key entropy.
        """
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    This is the official FastAPI pattern for config (see FastAPI docs /advanced/settings/).

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
