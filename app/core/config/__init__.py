from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    chat_auth_mode: str
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    profiles_db_path: str
    session_backend: str
    session_db_path: str
    session_ttl_s: int
    overflow_ttl_s: int
    cache_sweep_interval_s: int
    turn_budget_s: float
    store_timeout_s: float
    max_message_chars: int
    enrich_summaries: bool
    enrich_concurrency: int


settings = Settings(
    api_key=_get_env("API_KEY"),
    chat_auth_mode=(_get_env("CHAT_AUTH_MODE", "public") or "public").strip().lower(),
    rate_limit=_get_env("RATE_LIMIT", "30/minute") or "30/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
    ),
    profiles_db_path=_get_env("PROFILES_DB_PATH", "data/profiles.db") or "data/profiles.db",
    session_backend=(_get_env("SESSION_BACKEND", "memory") or "memory").strip().lower(),
    session_db_path=_get_env("SESSION_DB_PATH", "data/sessions.db") or "data/sessions.db",
    session_ttl_s=_get_env_int("SESSION_TTL_S", 1800),
    overflow_ttl_s=_get_env_int("OVERFLOW_TTL_S", 600),
    cache_sweep_interval_s=_get_env_int("CACHE_SWEEP_INTERVAL_S", 60),
    turn_budget_s=_get_env_float("TURN_BUDGET_S", 30.0),
    store_timeout_s=_get_env_float("STORE_TIMEOUT_S", 10.0),
    max_message_chars=_get_env_int("MAX_MESSAGE_CHARS", 1600),
    enrich_summaries=_get_env_bool("ENRICH_SUMMARIES", False),
    enrich_concurrency=_get_env_int("ENRICH_CONCURRENCY", 3),
)

if settings.chat_auth_mode not in {"public", "protected"}:
    raise RuntimeError("CHAT_AUTH_MODE must be either 'public' or 'protected'.")

if settings.chat_auth_mode == "protected" and not settings.api_key:
    raise RuntimeError("CHAT_AUTH_MODE=protected requires API_KEY to be set.")

if settings.session_backend not in {"memory", "sqlite"}:
    raise RuntimeError("SESSION_BACKEND must be either 'memory' or 'sqlite'.")

__all__ = ["Settings", "settings"]
