"""
resetai/config.py
-----------------
Environment-driven settings. Values come from the process environment,
optionally seeded from a local .env file.

Import
------
    from resetai.config import Settings, get_settings
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dotenv

dotenv.load_dotenv()

_STORE_BACKENDS = {"memory", "supabase"}


@dataclass(frozen=True)
class Settings:
    store_backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    timezone: str = "UTC"
    default_sensitivity: int = 5
    cors_origins: tuple = ("*",)
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        supabase_url = os.environ.get("SUPABASE_URL") or None
        backend = os.environ.get("RESETAI_STORE") or ("supabase" if supabase_url else "memory")
        backend = backend.strip().lower()
        if backend not in _STORE_BACKENDS:
            raise RuntimeError(
                f"RESETAI_STORE must be one of {sorted(_STORE_BACKENDS)}, got '{backend}'"
            )
        origins: List[str] = [
            o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()
        ]
        return cls(
            store_backend=backend,
            supabase_url=supabase_url,
            supabase_key=os.environ.get("SUPABASE_SERVICE_KEY") or None,
            timezone=os.environ.get("RESETAI_TIMEZONE", "UTC"),
            default_sensitivity=int(os.environ.get("RESETAI_DEFAULT_SENSITIVITY", "5")),
            cors_origins=tuple(origins or ["*"]),
            log_level=os.environ.get("RESETAI_LOG_LEVEL", "INFO").upper(),
            port=int(os.environ.get("PORT", "8000")),
        )

    @property
    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
