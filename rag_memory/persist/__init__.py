"""
Persistence layer for memory records.

Provides:
- Stable hashing for content-addressable keys
- SQLite-backed KV store
- Memory store adapters (SQLite and in-memory)
"""

from .hashing import memory_key, owner_prefix, stable_hash
from .sqlite_store import KVStore
from .memory_store import BaseMemoryStore, InMemoryMemoryStore, SQLiteMemoryStore

__all__ = [
    "memory_key",
    "owner_prefix",
    "stable_hash",
    "KVStore",
    "BaseMemoryStore",
    "InMemoryMemoryStore",
    "SQLiteMemoryStore",
]
