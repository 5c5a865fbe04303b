# backend/repairpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///repairpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sessions and passwords
    SESSION_TTL_HOURS = _env_int("SESSION_TTL_HOURS", 12)
    BCRYPT_LOG_ROUNDS = _env_int("BCRYPT_LOG_ROUNDS", 12)

    # Warranty defaults
    WARRANTY_EXPIRING_SOON_DAYS = _env_int("WARRANTY_EXPIRING_SOON_DAYS", 30)
    DEFAULT_WARRANTY_MONTHS = _env_int("DEFAULT_WARRANTY_MONTHS", 12)

    # Retries on lock / optimistic version conflicts
    CONCURRENCY_MAX_RETRIES = _env_int("CONCURRENCY_MAX_RETRIES", 3)
