"""
core/config.py -- Beer Diary settings, read from the environment and .env.

get_settings() is the only entry point. It builds Settings on first use and
the lru_cache hands the same object back afterwards, so modules that read it
at import time (api.main, web.routes, auth.passwords) all agree. Tests that
need other values either set the environment before importing the app or
monkeypatch attributes on the cached object.

Env var names are the upper-cased field names: SECRET_KEY, DATABASE_URL,
SESSION_TTL_SECONDS, BCRYPT_ROUNDS, LOGIN_RATE_LIMIT and so on.

SECRET_KEY signs the session cookie. In DEBUG a throwaway key is generated;
otherwise startup fails without one.

Layer rule: core/ imports nothing from api/, web/, auth/, or diary/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("beerdiary.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'beer_diary.db'}"


class Settings(BaseSettings):
    """Every tunable of the app. Only SECRET_KEY lacks a usable production default."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; check_values() replaces or rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_ttl_seconds: int = 3600
    session_purge_interval_seconds: int = 6 * 60 * 60

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # bcrypt cost factor. 12 in production; tests drop it to 4 (bcrypt's minimum).
    bcrypt_rounds: int = 12
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Content policy
    # ------------------------------------------------------------------

    # False: POST /beers requires a logged-in user, same as GET /beers/new.
    # True: anyone may submit a beer (the historical behaviour).
    anonymous_beer_submission: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_values(self) -> "Settings":
        """Fill in a dev SECRET_KEY when DEBUG is on, then range-check the rest.

        A generated key changes on every start, which logs everyone out.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required unless DEBUG=true. Set it in the environment or .env."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.session_ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings instance."""
    return Settings()
