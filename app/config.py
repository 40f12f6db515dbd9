"""Environment-driven settings.

Values are read at call time rather than cached at import so a running test
suite can override them with ``monkeypatch.setenv``.
"""
from __future__ import annotations

import logging
import os
from datetime import timedelta

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev-only-insecure-jwt-secret-change-me-please"

_env_loaded = False


def load_environment() -> None:
    global _env_loaded
    if not _env_loaded:
        load_dotenv()
        _env_loaded = True


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        logger.warning("JWT_SECRET is not set; using the insecure development secret")
        return DEV_JWT_SECRET
    return secret


def get_jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def get_token_ttl() -> timedelta:
    return timedelta(days=int(os.getenv("TOKEN_TTL_DAYS", "7")))


def get_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()
