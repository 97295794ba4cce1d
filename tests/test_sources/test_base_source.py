"""Tests for BaseSource — phases, caching and freshness.

Test Coverage:
    - Phase error categories and idempotent wrapping
    - Cache hits skip fetch/parse/validate
    - Source file modification invalidates the cache
    - Dependency data versions in cache keys and freshness
    - Cache failures never fail processing
"""

import json
import os
import time
from pathlib import Path
from typing import Any

import pytest

from cragdata.cache import JsonStore
from cragdata.core.errors import ErrorCategory, ProcessingError
from cragdata.core.results import ProcessingResult
from cragdata.sources.base import BaseSource, short_hash


class CountingSource(BaseSource):
    """Reads a JSON list of items and counts phase calls."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.fetch_calls = 0
        self.parse_calls = 0
        self.validate_calls = 0

    async def fetch(self, dependencies):
        self.fetch_calls += 1
        return await self.read_input_file()

    async def parse(self, raw, dependencies):
        self.parse_calls += 1
        return {"items": json.loads(raw), "metadata": self.build_metadata()}

    async def validate(self, payload):
        self.validate_calls += 1
        self.check_structure(payload, "items")
        return self.finalize(payload, [], len(payload["items"]))

    def get_source_files(self) -> list[Path]:
        return [self.input_file]


class RaisingSource(BaseSource):
    """Raises the configured exception in the configured phase."""

    def __init__(self, phase: str, error: Exception, **kwargs: Any) -> None:
        super().__init__({}, **kwargs)
        self.phase = phase
        self.error = error

    async def fetch(self, dependencies):
        if self.phase == "fetch":
            raise self.error
        return "raw"

    async def parse(self, raw, dependencies):
        if self.phase == "parse":
            raise self.error
        return {"metadata": self.build_metadata()}

    async def validate(self, payload):
        if self.phase == "validate":
            raise self.error
        return await super().validate(payload)


class MemoryCache:
    """In-memory cache recording every call."""

    def __init__(self, fail_set: bool = False, fail_read: bool = False) -> None:
        self.data: dict[str, Any] = {}
        self.set_calls: list[str] = []
        self.fail_set = fail_set
        self.fail_read = fail_read

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.set_calls.append(key)
        if self.fail_set:
            raise OSError("disk full")
        self.data[key] = value

    async def invalidate(self, key):
        self.data.pop(key, None)

    async def is_stale(self, key, reference_files):
        if self.fail_read:
            raise OSError("permission denied")
        return key not in self.data

    async def clear(self):
        self.data.clear()


def completed(name: str, processed_at: str) -> ProcessingResult:
    payload = {"summits": [], "metadata": {"processed_at": processed_at}}
    return ProcessingResult.completed(name, payload, 0)


@pytest.fixture
def input_file(tmp_path: Path) -> Path:
    path = tmp_path / "items.json"
    path.write_text('["a", "b", "c"]', encoding="utf-8")
    past = time.time_ns() - 60 * 1_000_000_000
    os.utime(path, ns=(past, past))
    return path


@pytest.fixture
def store(tmp_path: Path) -> JsonStore:
    return JsonStore(tmp_path / "cache")


class TestProcessPhases:
    """Test fetch -> parse -> validate and error wrapping."""

    @pytest.mark.asyncio
    async def test_process_without_cache(self, input_file: Path) -> None:
        source = CountingSource({"input_file": str(input_file)})
        payload = await source.process()

        assert payload["items"] == ["a", "b", "c"]
        assert payload["metadata"]["validation"]["total_validated"] == 3
        assert payload["metadata"]["source_files"] == [str(input_file)]
        assert source.fetch_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("phase", "category"),
        [
            ("fetch", ErrorCategory.SOURCE_ERROR),
            ("parse", ErrorCategory.PARSE_ERROR),
            ("validate", ErrorCategory.VALIDATION_ERROR),
        ],
    )
    async def test_phase_errors_categorized(self, phase: str, category: ErrorCategory) -> None:
        """Unexpected exceptions get the category of the failing phase."""
        source = RaisingSource(phase, RuntimeError("boom"), name="broken")

        with pytest.raises(ProcessingError) as exc_info:
            await source.process()

        assert exc_info.value.category is category
        assert exc_info.value.source_name == "broken"
        assert exc_info.value.context["error_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_processing_error_not_rewrapped(self) -> None:
        original = ProcessingError("timeout", ErrorCategory.NETWORK_ERROR, "api")
        source = RaisingSource("fetch", original, name="api")

        with pytest.raises(ProcessingError) as exc_info:
            await source.process()

        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_missing_input_file(self, tmp_path: Path) -> None:
        source = CountingSource({"input_file": str(tmp_path / "missing.json")}, name="items")

        with pytest.raises(ProcessingError, match="File not found") as exc_info:
            await source.process()

        assert exc_info.value.category is ErrorCategory.SOURCE_ERROR

    @pytest.mark.asyncio
    async def test_no_input_file_configured(self) -> None:
        source = CountingSource({}, name="items")

        with pytest.raises(ProcessingError, match="No input file specified"):
            await source.process()

    @pytest.mark.asyncio
    async def test_default_validate_requires_metadata(self) -> None:
        class NoMetadata(RaisingSource):
            async def parse(self, raw, dependencies):
                return {"items": []}

        source = NoMetadata("none", RuntimeError(), name="bare")
        with pytest.raises(ProcessingError, match="metadata must be an object") as exc_info:
            await source.process()

        assert exc_info.value.category is ErrorCategory.VALIDATION_ERROR


class TestProcessCaching:
    """Test cache hits, misses and invalidation."""

    @pytest.mark.asyncio
    async def test_second_run_uses_cache(self, input_file: Path, store: JsonStore) -> None:
        """A fresh cache entry skips every phase."""
        source = CountingSource({"input_file": str(input_file)}, cache=store)

        first = await source.process()
        second = await source.process()

        assert second == first
        assert source.fetch_calls == 1
        assert source.parse_calls == 1
        assert source.validate_calls == 1

    @pytest.mark.asyncio
    async def test_modified_file_invalidates(self, input_file: Path, store: JsonStore) -> None:
        source = CountingSource({"input_file": str(input_file)}, cache=store)
        await source.process()

        input_file.write_text('["d"]', encoding="utf-8")
        future = time.time_ns() + 60 * 1_000_000_000
        os.utime(input_file, ns=(future, future))

        payload = await source.process()
        assert payload["items"] == ["d"]
        assert source.fetch_calls == 2

    @pytest.mark.asyncio
    async def test_cache_disabled_in_config(self, input_file: Path) -> None:
        cache = MemoryCache()
        source = CountingSource(
            {"input_file": str(input_file), "cache": {"enabled": False}}, cache=cache
        )

        await source.process()
        await source.process()

        assert source.fetch_calls == 2
        assert cache.set_calls == []

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_not_fatal(self, input_file: Path) -> None:
        cache = MemoryCache(fail_set=True)
        source = CountingSource({"input_file": str(input_file)}, cache=cache)

        payload = await source.process()

        assert payload["items"] == ["a", "b", "c"]
        assert len(cache.set_calls) == 1

    @pytest.mark.asyncio
    async def test_cache_read_failure_processes_fresh(self, input_file: Path) -> None:
        cache = MemoryCache(fail_read=True)
        source = CountingSource({"input_file": str(input_file)}, cache=cache)

        payload = await source.process()

        assert payload["items"] == ["a", "b", "c"]
        assert source.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_failed_processing_not_cached(self) -> None:
        cache = MemoryCache()
        source = RaisingSource("validate", ValueError("bad"), cache=cache)

        with pytest.raises(ProcessingError):
            await source.process()

        assert cache.set_calls == []

    @pytest.mark.asyncio
    async def test_undecodable_cache_entry_processes_fresh(
        self, input_file: Path, store: JsonStore
    ) -> None:
        """A cache entry that is not valid UTF-8 is a miss, not a failure."""
        source = CountingSource({"input_file": str(input_file)}, cache=store)
        store.file_path(source.cache_key()).write_bytes(b"\xff\xfe{bad")

        payload = await source.process()

        assert payload["items"] == ["a", "b", "c"]
        assert source.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_payload_without_stamp_served_from_cache(self, store: JsonStore) -> None:
        """Without dependencies a missing processed_at does not defeat the cache."""

        class UnstampedSource(RaisingSource):
            fetch_calls = 0

            async def fetch(self, dependencies):
                self.fetch_calls += 1
                return "raw"

            async def parse(self, raw, dependencies):
                return {"items": [1, 2], "metadata": {"source_files": []}}

        source = UnstampedSource("none", RuntimeError(), name="unstamped", cache=store)

        first = await source.process()
        second = await source.process()

        assert second == first
        assert source.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self, input_file: Path, store: JsonStore) -> None:
        source = CountingSource({"input_file": str(input_file)}, cache=store)
        await source.process()

        await source.clear_cache()
        await source.process()

        assert source.fetch_calls == 2


class TestCacheKeys:
    """Test cache key derivation."""

    def test_key_is_deterministic(self) -> None:
        a = CountingSource({"input_file": "x.json", "n": 1})
        b = CountingSource({"n": 1, "input_file": "x.json"})
        assert a.cache_key() == b.cache_key()
        assert a.cache_key() == f"countingsource_{short_hash({'input_file': 'x.json', 'n': 1})}"

    def test_config_changes_key(self) -> None:
        a = CountingSource({"input_file": "x.json"})
        b = CountingSource({"input_file": "y.json"})
        assert a.cache_key() != b.cache_key()

    def test_dependency_versions_in_key(self) -> None:
        source = CountingSource({"input_file": "x.json"})
        old = {"summits": completed("summits", "2024-01-15T10:00:00+00:00")}
        new = {"summits": completed("summits", "2024-01-16T10:00:00+00:00")}

        old_key = source.cache_key(old)
        assert old_key.startswith(source.base_cache_key() + "_deps_")
        assert old_key != source.cache_key(new)

    def test_short_hash_length(self) -> None:
        assert len(short_hash({"a": 1})) == 8


class TestDependencyFreshness:
    """Test is_dependency_newer."""

    def test_newer_dependency(self) -> None:
        source = CountingSource()
        cached = {"metadata": {"processed_at": "2024-01-15T10:00:00+00:00"}}
        deps = {"summits": completed("summits", "2024-01-15T11:00:00+00:00")}
        assert source.is_dependency_newer(cached, deps)

    def test_older_dependency(self) -> None:
        source = CountingSource()
        cached = {"metadata": {"processed_at": "2024-01-15T10:00:00+00:00"}}
        deps = {"summits": completed("summits", "2024-01-15T09:00:00+00:00")}
        assert not source.is_dependency_newer(cached, deps)

    def test_skipped_dependency_ignored(self) -> None:
        source = CountingSource()
        cached = {"metadata": {"processed_at": "2024-01-15T10:00:00+00:00"}}
        deps = {"summits": ProcessingResult.skipped("summits", "disabled")}
        assert not source.is_dependency_newer(cached, deps)

    def test_cached_without_stamp_is_older(self) -> None:
        source = CountingSource()
        deps = {"summits": completed("summits", "2024-01-15T09:00:00+00:00")}
        assert source.is_dependency_newer({"items": []}, deps)

    def test_cached_without_stamp_and_no_dependencies(self) -> None:
        source = CountingSource()
        assert not source.is_dependency_newer({"items": []}, {})
        skipped = {"summits": ProcessingResult.skipped("summits", "disabled")}
        assert not source.is_dependency_newer({"items": []}, skipped)


class TestValidateRecords:
    """Test per-record validation."""

    def test_failures_become_diagnostics(self) -> None:
        source = CountingSource(name="items")

        def check(record, index):
            if record < 0:
                raise source.reject(f"Item at index {index} is negative")
            if record == 0:
                raise ValueError("zero")
            return record * 10

        valid, diagnostics = source.validate_records([1, -1, 0, 2], check, label="item")

        assert valid == [10, 20]
        assert [d.message for d in diagnostics] == [
            "Item at index 1 is negative",
            "Unexpected validation error: zero",
        ]
        assert all(d.is_error for d in diagnostics)
        assert diagnostics[0].context == {"index": 1, "item": -1}
        assert diagnostics[0].category is ErrorCategory.VALIDATION_ERROR
