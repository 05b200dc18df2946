"""Shared lock and queue store."""

from .client import (
    KeyValueStore,
    MemoryKeyValueStore,
    ParsedValue,
    RawValue,
    RedisKeyValueStore,
    StoredValue,
    create_key_value_store,
)

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "ParsedValue",
    "RawValue",
    "RedisKeyValueStore",
    "StoredValue",
    "create_key_value_store",
]
