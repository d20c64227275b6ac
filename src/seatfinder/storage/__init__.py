"""
Storage Module - Injectable state stores and the result cache.
==============================================================

- stores: KeyValueStore interface and the in-memory implementation
- cache: TTL cache for seating results
"""

from seatfinder.storage.cache import CacheEntry, ResultCache
from seatfinder.storage.stores import KeyValueStore, MemoryStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "CacheEntry",
    "ResultCache",
]
