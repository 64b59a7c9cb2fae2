"""Persistence and caching"""

from cinematch_engine.storage.bounded_cache import BoundedCache, user_content_key
from cinematch_engine.storage.engine_storage import EngineStorage
from cinematch_engine.storage.kv_store import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore

__all__ = [
    "BoundedCache",
    "EngineStorage",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
    "user_content_key",
]
