"""
Persistent key-value store for the cache tier.
"""

from gallery_api.datastore.engine import close_db, init_db
from gallery_api.datastore.store import MemoryStore, PersistentStore, SqlStore

__all__ = [
    "MemoryStore",
    "PersistentStore",
    "SqlStore",
    "close_db",
    "init_db",
]
