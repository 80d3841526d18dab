import logging
from functools import lru_cache

from ..config import DATA_STORE_BACKEND
from .interfaces import DataStore, DataStoreError, Row
from .sql_store import SqlStore
from .supabase_store import SupabaseStore

logger = logging.getLogger(__name__)


@lru_cache
def get_store() -> DataStore:
    """Dependency returning the configured row store"""
    if DATA_STORE_BACKEND == "supabase":
        logger.info("Using Supabase data API row store")
        return SupabaseStore()
    logger.info("Using SQL row store")
    return SqlStore()


__all__ = ["DataStore", "DataStoreError", "Row", "SqlStore", "SupabaseStore", "get_store"]
