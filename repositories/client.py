"""
Supabase client initialization.

Holds only the connection setup. The Supabase-backed stores call
get_supabase() when they are constructed, so the engines, the in-memory
backend and the tests never need credentials.

Environment variables:
- SUPABASE_URL: Supabase project URL (required)
- SUPABASE_KEY: server-side API key; the usage RPC writes (required)
- SUPABASE_HTTP_TIMEOUT_SECONDS: PostgREST request timeout (default 10)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from supabase import Client, ClientOptions, create_client  # type: ignore[import-not-found]

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


def _require(name: str, hint: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing environment variable: {name}. {hint} "
            "Set DATA_BACKEND=memory to run without Supabase."
        )
    return value


def _http_timeout() -> float:
    raw = os.getenv("SUPABASE_HTTP_TIMEOUT_SECONDS", "").strip()
    if not raw:
        return DEFAULT_HTTP_TIMEOUT_SECONDS
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Invalid SUPABASE_HTTP_TIMEOUT_SECONDS: {raw!r}") from None


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Shared Supabase client, created on first use.

    Raises:
        RuntimeError: If SUPABASE_URL or SUPABASE_KEY is not set
    """
    url = _require("SUPABASE_URL", "Set it to your Supabase project URL.")
    key = _require("SUPABASE_KEY", "Set it to your Supabase API key.")
    return create_client(url, key, options=ClientOptions(postgrest_client_timeout=_http_timeout()))


__all__ = ["get_supabase"]
