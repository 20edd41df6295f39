"""
Runtime configuration for the protocol tracker.

Values come from environment variables (optionally loaded from a .env file).
Settings are read when ``get_settings()`` is called rather than at import
time, so tests can adjust the environment per test.
"""

import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = "Protocol Distribution Tracker"
    VERSION: str = "0.1.0"

    # ---------- Session ----------
    SESSION_COOKIE_NAME: str = "tracker_session"
    SESSION_SECRET_KEY: str = "replace-with-secure-secret-in-production"
    SESSION_ALGORITHM: str = "HS256"
    SESSION_MAX_AGE_SECONDS: int = 24 * 60 * 60
    SESSION_COOKIE_SECURE: bool = False

    # ---------- Legacy superuser ----------
    SUPERUSER_USERNAME: str = "admin"
    SUPERUSER_PASSWORD: str = "admin"

    # ---------- Seeded admin account ----------
    SEED_ADMIN_USERNAME: str = "admin"
    SEED_ADMIN_PASSWORD: str = "admin"
    SEED_ADMIN_EMAIL: str = "admin@system.local"

    # ---------- Security ----------
    BCRYPT_ROUNDS: int = 12
    LOGIN_RATE_LIMIT: str = "15/15minutes"
    RATE_LIMITS_DISABLED: bool = False

    # ---------- Logging ----------
    LOG_LEVEL: str = "INFO"
    ERROR_LOG_PATH: str = "error.log"


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        SESSION_SECRET_KEY=os.getenv(
            "SESSION_SECRET_KEY", "replace-with-secure-secret-in-production"
        ),
        SESSION_MAX_AGE_SECONDS=int(
            os.getenv("SESSION_MAX_AGE_SECONDS", str(24 * 60 * 60))
        ),
        SESSION_COOKIE_SECURE=_env_flag("SESSION_COOKIE_SECURE"),
        SUPERUSER_USERNAME=os.getenv("SUPERUSER_USERNAME", "admin"),
        SUPERUSER_PASSWORD=os.getenv("SUPERUSER_PASSWORD", "admin"),
        SEED_ADMIN_USERNAME=os.getenv("SEED_ADMIN_USERNAME", "admin"),
        SEED_ADMIN_PASSWORD=os.getenv("SEED_ADMIN_PASSWORD", "admin"),
        SEED_ADMIN_EMAIL=os.getenv("SEED_ADMIN_EMAIL", "admin@system.local"),
        BCRYPT_ROUNDS=int(os.getenv("BCRYPT_ROUNDS", "12")),
        LOGIN_RATE_LIMIT=os.getenv("LOGIN_RATE_LIMIT", "15/15minutes"),
        RATE_LIMITS_DISABLED=(
            os.getenv("ENV") == "TEST" or _env_flag("DISABLE_RATE_LIMITS")
        ),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        ERROR_LOG_PATH=os.getenv("ERROR_LOG_PATH", "error.log"),
    )
