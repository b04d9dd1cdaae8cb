"""Process-wide store selection. Routers depend on get_store(); tests override it."""
from __future__ import annotations

import logging
from functools import lru_cache

from resetai.config import get_settings
from resetai.store.base import ContextStore
from resetai.store.memory_store import InMemoryStore
from resetai.store.supabase_store import SupabaseStore
from resetai.supabase.supabase_client import get_supabase

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> ContextStore:
    backend = get_settings().store_backend
    if backend == "supabase":
        logger.info("Using Supabase context store")
        return SupabaseStore(get_supabase())
    logger.warning("Using in-memory context store; data is lost on restart")
    return InMemoryStore()
