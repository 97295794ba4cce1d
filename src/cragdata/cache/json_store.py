"""JSON file cache with modification-time freshness checks.

Stores one JSON document per key. The file's own modification time is the
entry's ``stored_at`` timestamp and is compared against the modification times
of the files the entry was derived from.

Storage structure:
    cache/{key}.json

Example:
    cache/climberssource_1a2b3c4d.json
    cache/geojsonlocationssource_5e6f7a8b_deps_9c0d1e2f.json

All I/O operations are async-compatible using asyncio.to_thread for non-blocking
execution. Writes go through a temporary file and ``os.replace`` so readers
never see a half-written entry, but there is no locking: concurrent writers to
the same key race and the last one wins.
"""

import asyncio
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """Key-value store contract consumed by sources."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def invalidate(self, key: str) -> None: ...

    async def is_stale(self, key: str, reference_files: Iterable[str | Path]) -> bool: ...

    async def clear(self) -> None: ...


class JsonStore:
    """Async JSON cache keyed by string.

    Args:
        base_path: Root directory for cache. Defaults to 'cache/'.
    """

    def __init__(self, base_path: str | Path = "cache") -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def file_path(self, key: str) -> Path:
        """Return the file backing ``key``.

        Raises:
            ValueError: If the key is empty or contains path separators
        """
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.base_path / f"{key}.json"

    async def get(self, key: str) -> Any | None:
        """Read a cached value.

        Args:
            key: Cache key

        Returns:
            The stored value, or None if the entry is absent or unreadable
        """
        file_path = self.file_path(key)

        def _read() -> Any | None:
            try:
                data = file_path.read_bytes()
            except FileNotFoundError:
                logger.debug("Cache miss for %s", key)
                return None
            try:
                value = json.loads(data.decode("utf-8"))
            except ValueError as e:
                logger.warning(
                    "Failed to decode cache file %s: %s. "
                    "File may be corrupted, treating as a miss.",
                    file_path, e,
                )
                return None
            logger.debug("Cache hit for %s", key)
            return value

        return await asyncio.to_thread(_read)

    async def set(self, key: str, value: Any) -> Path:
        """Persist a value under ``key``, replacing any previous entry.

        Args:
            key: Cache key
            value: JSON-serializable value

        Returns:
            Path to the written file

        Raises:
            ValueError: If value is None (reserved as the absent marker)
            TypeError: If value is not JSON-serializable
            OSError: On filesystem failure
        """
        if value is None:
            raise ValueError("Cannot cache None; it is reserved as the absent marker")

        file_path = self.file_path(key)

        def _write() -> None:
            text = json.dumps(value, indent=2, ensure_ascii=False)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=file_path.parent, prefix=f".{key}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp_name, file_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        await asyncio.to_thread(_write)
        logger.debug("Cached data for %s", key)
        return file_path

    async def invalidate(self, key: str) -> None:
        """Remove an entry. Removing an absent key is a no-op."""
        file_path = self.file_path(key)

        def _unlink() -> bool:
            try:
                file_path.unlink()
                return True
            except FileNotFoundError:
                return False

        if await asyncio.to_thread(_unlink):
            logger.debug("Invalidated cache for %s", key)

    async def is_stale(self, key: str, reference_files: Iterable[str | Path]) -> bool:
        """Check whether an entry is older than the files it was derived from.

        Args:
            key: Cache key
            reference_files: Files whose modification times bound freshness

        Returns:
            True if the entry is absent, a reference file is missing, or a
            reference file was modified after the entry was written
        """
        file_path = self.file_path(key)
        references = [Path(p) for p in reference_files]

        def _check() -> bool:
            try:
                stored_at = file_path.stat().st_mtime_ns
            except FileNotFoundError:
                logger.debug("Cache %s does not exist, considering it stale", key)
                return True

            for reference in references:
                try:
                    modified = reference.stat().st_mtime_ns
                except FileNotFoundError:
                    logger.warning("Source file not found: %s", reference)
                    return True
                if modified > stored_at:
                    logger.debug("Source file %s is newer than cache %s", reference, key)
                    return True

            logger.debug("Cache %s is up to date with source files", key)
            return False

        return await asyncio.to_thread(_check)

    async def clear(self) -> None:
        """Remove every entry and recreate the empty store."""

        def _clear() -> None:
            shutil.rmtree(self.base_path, ignore_errors=True)
            self.base_path.mkdir(parents=True, exist_ok=True)

        await asyncio.to_thread(_clear)
        logger.info("Cache cleared: %s", self.base_path)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self.file_path(key).exists)

    async def get_metadata(self, key: str) -> dict[str, Any] | None:
        """Return size and modification time of an entry, or None if absent."""
        file_path = self.file_path(key)

        def _stat() -> dict[str, Any] | None:
            try:
                stat = file_path.stat()
            except FileNotFoundError:
                return None
            return {
                "size": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            }

        return await asyncio.to_thread(_stat)

    async def find_keys(self, pattern: str = "*") -> list[str]:
        """List keys matching a glob pattern (``*`` wildcards).

        Args:
            pattern: Pattern matched against the key, e.g. ``climberssource_*``

        Returns:
            Sorted list of matching keys
        """
        if not self.base_path.exists():
            return []

        def _list() -> list[str]:
            return sorted(p.stem for p in self.base_path.glob(f"{pattern}.json"))

        return await asyncio.to_thread(_list)

    async def invalidate_by_pattern(self, pattern: str) -> int:
        """Invalidate every key matching ``pattern``.

        Returns:
            Number of entries removed
        """
        count = 0
        for key in await self.find_keys(pattern):
            try:
                await self.invalidate(key)
                count += 1
            except OSError as e:
                logger.warning("Failed to invalidate cache for key %s: %s", key, e)

        if count:
            logger.debug("Invalidated %d cache entries matching pattern: %s", count, pattern)
        return count

    async def get_cache_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with cache statistics:
                - entries: Number of cached keys
                - size_bytes: Total size on disk
        """

        def _stats() -> dict[str, Any]:
            files = list(self.base_path.glob("*.json"))
            return {
                "entries": len(files),
                "size_bytes": sum(f.stat().st_size for f in files),
            }

        return await asyncio.to_thread(_stats)
