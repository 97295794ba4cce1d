"""Base class for all data sources.

Every source runs the same three phases:

    fetch(dependencies)        -> raw input (file contents, HTTP response)
    parse(raw, dependencies)   -> payload dict with a ``metadata`` block
    validate(payload)          -> payload with failing records dropped

``process`` wraps the phases with a cache lookup. The cache key is derived from
the source type, a hash of its configuration and the data versions of its
resolved dependencies, so changing either produces a fresh entry.

Usage:
    class MySource(BaseSource):
        async def fetch(self, dependencies):
            return await self.read_input_file()

        async def parse(self, raw, dependencies):
            return {"items": json.loads(raw), "metadata": self.build_metadata()}

        def get_source_files(self):
            return [self.input_file]
"""

import asyncio
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping

from cragdata.cache import CacheBackend
from cragdata.core.diagnostics import Diagnostic
from cragdata.core.errors import ErrorCategory, ProcessingError, wrap_error
from cragdata.core.results import ProcessingResult, payload_version, utc_now

logger = logging.getLogger(__name__)

Dependencies = Mapping[str, ProcessingResult]
RecordValidator = Callable[[Any, int], Any]


def short_hash(value: Any) -> str:
    """First 8 hex characters of an md5 over canonical JSON."""
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()[:8]


def _parse_stamp(stamp: str) -> datetime | None:
    try:
        return datetime.fromisoformat(stamp)
    except (TypeError, ValueError):
        return None


class BaseSource(ABC):
    """Three-phase data source with cache-aware processing.

    Args:
        config: Source-specific configuration (opaque to the engine)
        dependencies: Resolved results of the sources this one depends on
        name: Configured source name (defaults to the class name)
        cache: Cache store; None disables caching
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        dependencies: Dependencies | None = None,
        *,
        name: str | None = None,
        cache: CacheBackend | None = None,
    ) -> None:
        self.config = dict(config or {})
        self.dependencies = dict(dependencies or {})
        self.source_name = name or type(self).__name__
        self.cache = cache

        cache_cfg = self.config.get("cache", True)
        if isinstance(cache_cfg, Mapping):
            cache_cfg = cache_cfg.get("enabled", True)
        self.cache_enabled = bool(cache_cfg)

    # -- Phases ------------------------------------------------------------

    @abstractmethod
    async def fetch(self, dependencies: Dependencies) -> Any:
        """Acquire raw input. Failures are source errors."""

    @abstractmethod
    async def parse(self, raw: Any, dependencies: Dependencies) -> dict[str, Any]:
        """Turn raw input into a payload. Malformed structure is a parse error."""

    async def validate(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Check payload structure. Subclasses validate their records.

        The default implementation only checks the structure and attaches an
        empty validation summary.
        """
        self.check_structure(payload)
        return self.finalize(payload, [], total_validated=0)

    def get_source_files(self) -> list[Path]:
        """Files whose modification time bounds cache freshness."""
        return []

    # -- Processing --------------------------------------------------------

    async def process(self, dependencies: Dependencies | None = None) -> dict[str, Any]:
        """Run fetch -> parse -> validate, short-circuiting on a fresh cache hit.

        Args:
            dependencies: Resolved dependency results (default: constructor value)

        Returns:
            Validated payload

        Raises:
            ProcessingError: If any phase fails
        """
        deps = self.dependencies if dependencies is None else dict(dependencies)
        cache_key = self.cache_key(deps)
        use_cache = self.cache_enabled and self.cache is not None

        if use_cache:
            cached = await self._load_cached(cache_key, deps)
            if cached is not None:
                logger.info("[%s] process: using cached data (%s)", self.source_name, cache_key)
                return cached

        self.log_progress("process", "Starting data processing")

        try:
            raw = await self.fetch(deps)
        except ProcessingError:
            raise
        except Exception as e:
            raise wrap_error(e, ErrorCategory.SOURCE_ERROR, self.source_name) from e

        try:
            parsed = await self.parse(raw, deps)
        except ProcessingError:
            raise
        except Exception as e:
            raise wrap_error(e, ErrorCategory.PARSE_ERROR, self.source_name) from e

        try:
            validated = await self.validate(parsed)
        except ProcessingError:
            raise
        except Exception as e:
            raise wrap_error(e, ErrorCategory.VALIDATION_ERROR, self.source_name) from e

        if use_cache:
            try:
                await self.cache.set(cache_key, validated)
                logger.debug("Cached data with key: %s", cache_key)
            except Exception as e:
                logger.warning("[%s] Failed to cache data: %s", self.source_name, e)

        self.log_progress("process", "Data processing completed")
        return validated

    async def _load_cached(self, cache_key: str, deps: Dependencies) -> dict[str, Any] | None:
        try:
            if await self.cache.is_stale(cache_key, self.get_source_files()):
                logger.debug("[%s] cache %s is stale", self.source_name, cache_key)
                return None
            cached = await self.cache.get(cache_key)
        except (OSError, ValueError) as e:
            logger.warning("[%s] Cache read failed, processing fresh data: %s", self.source_name, e)
            return None

        if cached is None:
            return None
        if self.is_dependency_newer(cached, deps):
            logger.debug("[%s] a dependency is newer than cache %s", self.source_name, cache_key)
            return None
        return cached

    async def clear_cache(self) -> None:
        """Invalidate this source's cache entries."""
        if self.cache is None:
            return
        base_key = self.base_cache_key()
        await self.cache.invalidate(base_key)
        if self.dependencies:
            await self.cache.invalidate(self.cache_key(self.dependencies))
        logger.info("Cleared cache for %s: %s", self.source_name, base_key)

    # -- Cache keys and freshness -------------------------------------------

    def base_cache_key(self) -> str:
        return f"{type(self).__name__.lower()}_{short_hash(self.config)}"

    def cache_key(self, dependencies: Dependencies | None = None) -> str:
        """Cache key covering configuration and dependency data versions."""
        base_key = self.base_cache_key()
        if not dependencies:
            return base_key

        versions = {
            name: result.version
            for name, result in dependencies.items()
            if result.version is not None
        }
        return f"{base_key}_deps_{short_hash(versions)}"

    def is_dependency_newer(self, cached: Any, dependencies: Dependencies) -> bool:
        """True if any dependency's data is newer than the cached payload.

        A cached payload without a readable ``processed_at`` stamp is older
        than any versioned dependency. With no versioned dependency nothing
        can be newer.
        """
        dep_versions = {}
        for name, result in dependencies.items():
            dep_at = _parse_stamp(result.version) if result.version else None
            if dep_at is not None:
                dep_versions[name] = dep_at
        if not dep_versions:
            return False

        stamp = payload_version(cached)
        cached_at = _parse_stamp(stamp) if stamp else None
        if cached_at is None:
            return True

        for name, dep_at in dep_versions.items():
            if dep_at > cached_at:
                logger.debug("Dependency %s is newer than cache", name)
                return True
        return False

    # -- Helpers for subclasses ---------------------------------------------

    @property
    def input_file(self) -> Path:
        """The configured ``input_file``.

        Raises:
            ProcessingError: If no input file is configured
        """
        input_file = self.config.get("input_file")
        if not input_file:
            raise ProcessingError(
                "No input file specified in configuration",
                ErrorCategory.SOURCE_ERROR,
                self.source_name,
                {"input_file": input_file},
            )
        return Path(input_file)

    async def read_input_file(self, encoding: str = "utf-8") -> str:
        """Read ``input_file`` without blocking the event loop."""
        path = self.input_file
        self.log_progress("fetch", f"Reading {path}")
        try:
            content = await asyncio.to_thread(path.read_text, encoding=encoding)
        except FileNotFoundError as e:
            raise ProcessingError(
                f"File not found: {path}",
                ErrorCategory.SOURCE_ERROR,
                self.source_name,
                {"input_file": str(path)},
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise ProcessingError(
                f"Failed to read file {path}: {e}",
                ErrorCategory.SOURCE_ERROR,
                self.source_name,
                {"input_file": str(path), "original_error": str(e)},
            ) from e
        self.log_progress("fetch", f"Read {len(content)} characters")
        return content

    def build_metadata(self, **extra: Any) -> dict[str, Any]:
        """Metadata block every parsed payload carries."""
        return {
            "processed_at": utc_now().isoformat(),
            "source_files": [str(p) for p in self.get_source_files()],
            **extra,
        }

    def check_structure(self, payload: Any, *list_fields: str) -> None:
        """Fatal structural checks on a parsed payload.

        Raises:
            ProcessingError: If the payload is not a dict, lacks a metadata
                dict, or any of ``list_fields`` is not a list
        """
        if not isinstance(payload, dict):
            raise ProcessingError(
                "Parsed data must be an object",
                ErrorCategory.VALIDATION_ERROR,
                self.source_name,
                {"data_type": type(payload).__name__},
            )
        for field_name in list_fields:
            if not isinstance(payload.get(field_name), list):
                raise ProcessingError(
                    f"Invalid data structure: {field_name} must be an array",
                    ErrorCategory.VALIDATION_ERROR,
                    self.source_name,
                    {"field": field_name, "data_type": type(payload.get(field_name)).__name__},
                )
        if not isinstance(payload.get("metadata"), dict):
            raise ProcessingError(
                "Invalid data structure: metadata must be an object",
                ErrorCategory.VALIDATION_ERROR,
                self.source_name,
                {"data_type": type(payload.get("metadata")).__name__},
            )

    def validate_records(
        self,
        records: list[Any],
        validator: RecordValidator,
        label: str = "record",
    ) -> tuple[list[Any], list[Diagnostic]]:
        """Validate records one by one, dropping failures.

        Args:
            records: Parsed records
            validator: Returns the cleaned record or raises to reject it
            label: Record noun used in messages

        Returns:
            (passing records, one error diagnostic per dropped record)
        """
        valid: list[Any] = []
        diagnostics: list[Diagnostic] = []

        for index, record in enumerate(records):
            try:
                valid.append(validator(record, index))
            except ProcessingError as e:
                message = e.message
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                message = f"Unexpected validation error: {e}"
            else:
                continue

            diagnostics.append(
                Diagnostic.error(
                    ErrorCategory.VALIDATION_ERROR,
                    self.source_name,
                    message,
                    index=index,
                    **{label: record},
                )
            )

        return valid, diagnostics

    def reject(self, message: str, **context: Any) -> ProcessingError:
        """Build a record-level validation error."""
        return ProcessingError(message, ErrorCategory.VALIDATION_ERROR, self.source_name, context)

    def finalize(
        self,
        payload: dict[str, Any],
        diagnostics: list[Diagnostic],
        total_validated: int,
        **fields: Any,
    ) -> dict[str, Any]:
        """Assemble the validated payload with its validation summary."""
        errors = [d for d in diagnostics if d.is_error]
        warnings = [d for d in diagnostics if not d.is_error]

        if errors:
            logger.warning(
                "[%s] Validation dropped %d records", self.source_name, len(errors)
            )
        if warnings:
            logger.warning(
                "[%s] Validation found %d warnings", self.source_name, len(warnings)
            )

        self.log_progress(
            "validate",
            f"Validated {total_validated} records "
            f"({len(errors)} errors, {len(warnings)} warnings)",
        )

        return {
            **payload,
            **fields,
            "metadata": {
                **payload["metadata"],
                "validated_at": utc_now().isoformat(),
                "validation": {
                    "total_validated": total_validated,
                    "error_count": len(errors),
                    "warning_count": len(warnings),
                },
                "diagnostics": [d.to_dict() for d in diagnostics],
            },
        }

    def log_progress(self, stage: str, message: str) -> None:
        logger.info("[%s] %s: %s", self.source_name, stage, message)
