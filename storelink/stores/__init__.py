"""Key-value store contract and implementations."""
from storelink.stores.base import KeyValueStore
from storelink.stores.memory import InMemoryKeyValueStore
from storelink.stores.sql import KeyValueRecord, SqlKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueRecord",
    "KeyValueStore",
    "SqlKeyValueStore",
]
