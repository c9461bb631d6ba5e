"""
Engine settings loaded from the environment / .env file.

Environment variables (all optional):
- DATA_BACKEND: "supabase" (default) or "memory"
- LOOKUP_TIMEOUT_SECONDS: seconds allowed per data-access lookup during
  evaluation (default 2.0; 0 or empty disables the bound)
- STORE_TIMEZONE: IANA timezone used for the business-hours risk signal
  (default UTC)
- LOG_LEVEL: logging level for the API process (default INFO)
- MEMORY_SEED_FILE: JSON file loaded into the stores when DATA_BACKEND=memory
  (default: start empty)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_ENV_LOADED = False

DATA_BACKENDS = ("supabase", "memory")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _ensure_env() -> None:
    global _ENV_LOADED
    if not _ENV_LOADED:
        env_path = Path(__file__).resolve().parent.parent / ".env"
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)
        _ENV_LOADED = True


def _get(key: str, default: str = "") -> str:
    _ensure_env()
    return os.environ.get(key, default)


def _lookup_timeout() -> Optional[float]:
    raw = _get("LOOKUP_TIMEOUT_SECONDS", "2.0").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(
            f"Invalid LOOKUP_TIMEOUT_SECONDS: {raw!r}. Set it to a number of seconds."
        ) from None
    if value < 0:
        raise RuntimeError("LOOKUP_TIMEOUT_SECONDS must be >= 0")
    return value or None


def _data_backend() -> str:
    backend = _get("DATA_BACKEND", "supabase").strip().lower()
    if backend not in DATA_BACKENDS:
        raise RuntimeError(
            f"Invalid DATA_BACKEND: {backend!r}. Expected one of {', '.join(DATA_BACKENDS)}."
        )
    return backend


def _log_level() -> str:
    level = _get("LOG_LEVEL", "INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise RuntimeError(
            f"Invalid LOG_LEVEL: {level!r}. Expected one of {', '.join(LOG_LEVELS)}."
        )
    return level


@dataclass(frozen=True)
class Settings:
    data_backend: str = field(default_factory=_data_backend)
    lookup_timeout_seconds: Optional[float] = field(default_factory=_lookup_timeout)
    store_timezone: str = field(default_factory=lambda: _get("STORE_TIMEZONE", "UTC"))
    log_level: str = field(default_factory=_log_level)
    memory_seed_file: Optional[str] = field(default_factory=lambda: _get("MEMORY_SEED_FILE").strip() or None)


def get_settings() -> Settings:
    """Return a Settings instance populated from env vars / .env file."""
    return Settings()


__all__ = [
    "Settings",
    "get_settings",
]
