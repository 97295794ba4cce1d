"""JSON file cache for cragdata.

Durable key -> JSON value storage with mtime-based freshness checks.
"""

from cragdata.cache.json_store import CacheBackend, JsonStore

__all__ = ["CacheBackend", "JsonStore"]
