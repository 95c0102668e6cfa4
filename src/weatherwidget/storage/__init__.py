from .cache import (
    CachedPayload,
    CacheStore,
    SqliteCacheStore,
    delete_entry,
    list_keys,
    load_entry,
    load_payload,
    prune_expired,
    store_entry,
)
from .db import initialize_database

__all__ = [
    "CacheStore",
    "CachedPayload",
    "SqliteCacheStore",
    "delete_entry",
    "initialize_database",
    "list_keys",
    "load_entry",
    "load_payload",
    "prune_expired",
    "store_entry",
]
