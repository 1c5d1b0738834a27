"""Runtime settings resolved from the environment.

Entry points load a local ``.env`` with ``python-dotenv`` (never overriding
variables already set) and then build :class:`Settings` via
:meth:`Settings.from_env`. Library functions accept an explicit ``settings``
argument and only fall back to the environment when it is omitted.

``OPENAI_API_KEY`` is intentionally absent: the OpenAI SDK reads it itself.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_MODEL = "gpt-5"
DEFAULT_ABACATEPAY_API_URL = "https://api.abacatepay.com/v1"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None

    # AI provider
    openai_model: str = DEFAULT_MODEL
    ai_timeout_s: float = 60.0
    ai_max_attempts: int = 3
    ai_initial_delay_s: float = 2.0
    prompt_max_rows: int = 400

    # Ingestion limits
    max_server_rows: int = 10_000
    max_client_rows: int = 1_000

    # Auth provider
    supabase_url: str | None = None
    supabase_anon_key: str | None = None

    # Payment provider
    abacatepay_api_key: str | None = None
    abacatepay_api_url: str = DEFAULT_ABACATEPAY_API_URL
    webhook_secret: str | None = None

    # HTTP surface
    app_origin: str = "http://localhost:5173"
    cors_origins: tuple[str, ...] = field(default=("*",))

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        e = os.environ if env is None else env
        cors_raw = _env_str(e, "SA_CORS_ORIGINS")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else ("*",)
        return cls(
            database_url=_env_str(e, "DATABASE_URL"),
            openai_model=_env_str(e, "SA_OPENAI_MODEL") or DEFAULT_MODEL,
            ai_timeout_s=_env_float(e, "SA_AI_TIMEOUT_S", 60.0),
            ai_max_attempts=_env_int(e, "SA_AI_MAX_ATTEMPTS", 3),
            ai_initial_delay_s=_env_float(e, "SA_AI_INITIAL_DELAY_S", 2.0),
            prompt_max_rows=_env_int(e, "SA_PROMPT_MAX_ROWS", 400),
            max_server_rows=_env_int(e, "SA_MAX_SERVER_ROWS", 10_000),
            max_client_rows=_env_int(e, "SA_MAX_CLIENT_ROWS", 1_000),
            supabase_url=_env_str(e, "SUPABASE_URL"),
            supabase_anon_key=_env_str(e, "SUPABASE_ANON_KEY"),
            abacatepay_api_key=_env_str(e, "ABACATEPAY_API_KEY"),
            abacatepay_api_url=_env_str(e, "ABACATEPAY_API_URL") or DEFAULT_ABACATEPAY_API_URL,
            webhook_secret=_env_str(e, "ABACATEPAY_WEBHOOK_SECRET"),
            app_origin=_env_str(e, "SA_APP_ORIGIN") or "http://localhost:5173",
            cors_origins=cors,
        )


__all__ = ["Settings", "DEFAULT_MODEL", "DEFAULT_ABACATEPAY_API_URL"]
