"""
storage/ - Persistence capability.

Modules:
- store: Store interface with in-memory and JSON-file backends
"""

from storage.store import (
    Store,
    MemoryStore,
    JsonFileStore,
    create_store,
)

__all__ = [
    "Store",
    "MemoryStore",
    "JsonFileStore",
    "create_store",
]
