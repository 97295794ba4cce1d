"""Orchestrator — dependency-aware source processing.

For each requested source:
  1. Return the memoized result if the source was already handled this run
  2. Short-circuit disabled sources to ``skipped``
  3. Resolve dependencies depth-first in declaration order, detecting cycles
  4. Instantiate the source with the resolved results and run ``process``
  5. Apply transformers, then hand the payload to importers
  6. Memoize the result and update run statistics

Usage:
    orchestrator = Orchestrator(definitions, cache=JsonStore("cache/"))
    summary = await orchestrator.process_all()
    for name, result in summary.results.items():
        print(f"{name}: {result.status.value} ({result.record_count} records)")
"""

import logging
import time
from typing import Any, Iterable, Mapping, Sequence

from cragdata.cache import CacheBackend
from cragdata.config import SourceDefinition
from cragdata.core.diagnostics import Diagnostic, DiagnosticKind, DiagnosticSink, LoggingSink
from cragdata.core.errors import (
    CircularDependencyError,
    ErrorCategory,
    ProcessingError,
    wrap_error,
)
from cragdata.core.results import (
    ProcessingResult,
    RunStatistics,
    RunSummary,
    utc_now,
)
from cragdata.pipeline.stages import Importer, Transformer, apply_transformers, run_importers
from cragdata.sources.base import BaseSource
from cragdata.sources.registry import SourceFactory, SourceRegistry, default_registry

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class Orchestrator:
    """Resolves, processes and memoizes named sources for one run.

    Memo and resolution state belong to the instance; ``process_all`` resets
    them, so each call is an independent run. Sources run strictly one at a
    time.

    Args:
        definitions: Source name -> SourceDefinition (iteration order is run order)
        registry: Source type registry (default: built-in sources)
        cache: Cache store handed to sources; None disables caching
        sink: Receiver for diagnostics (default: LoggingSink)
        transformers: Applied in order to every completed payload
        importers: Receive every completed, transformed payload
    """

    def __init__(
        self,
        definitions: Mapping[str, SourceDefinition],
        registry: SourceRegistry | None = None,
        cache: CacheBackend | None = None,
        sink: DiagnosticSink | None = None,
        transformers: Sequence[Transformer] = (),
        importers: Sequence[Importer] = (),
    ) -> None:
        self.definitions = dict(definitions)
        self.registry = registry or default_registry()
        self.cache = cache
        self.sink = sink or LoggingSink()
        self.transformers = list(transformers)
        self.importers = list(importers)

        self._factories: dict[str, SourceFactory | None] = {
            name: self.registry.get(definition.source_type)
            for name, definition in self.definitions.items()
        }
        for name, factory in self._factories.items():
            if factory is None and self.definitions[name].enabled:
                logger.warning(
                    "Source %s has unregistered type %s",
                    name, self.definitions[name].source_type,
                )

        self.reset()

    def reset(self) -> None:
        """Forget memoized results and statistics."""
        self._memo: dict[str, ProcessingResult] = {}
        self._failures: dict[str, ProcessingError] = {}
        self._resolving: list[str] = []
        self.statistics = RunStatistics()

    @property
    def results(self) -> dict[str, ProcessingResult]:
        """Results memoized so far in this run."""
        return dict(self._memo)

    async def process_source(self, name: str) -> ProcessingResult:
        """Process one source and, first, everything it depends on.

        Args:
            name: Source name

        Returns:
            Completed or skipped ProcessingResult

        Raises:
            CircularDependencyError: If ``name`` is already being resolved
            ProcessingError: If the source or one of its dependencies fails
        """
        if name in self._resolving:
            start = self._resolving.index(name)
            raise CircularDependencyError(self._resolving[start:] + [name])

        if name in self._failures:
            raise self._failures[name]
        if name in self._memo:
            logger.debug("Using memoized result for source: %s", name)
            return self._memo[name]

        definition = self.definitions.get(name)
        if definition is None:
            raise ProcessingError(
                f"Source configuration not found: {name}",
                ErrorCategory.CONFIG_ERROR,
                name,
            )

        if self.statistics.started_at is None:
            self.statistics.started_at = utc_now()
        started = time.perf_counter()
        self.statistics.processed_sources += 1

        if not definition.enabled:
            logger.info("Source %s is disabled, skipping", name)
            result = ProcessingResult.skipped(name, "disabled", _elapsed_ms(started))
            self.statistics.skipped_sources += 1
            self._memo[name] = result
            return result

        logger.info("Starting processing for source: %s", name)
        try:
            dependencies = await self._resolve_dependencies(definition)
            source = self._instantiate(definition, dependencies)
            payload = await source.process(dependencies)
            payload = await apply_transformers(name, payload, self.transformers)
            await run_importers(name, payload, self.importers)
        except Exception as e:
            error = wrap_error(e, ErrorCategory.SOURCE_ERROR, name)
            self._record_failure(name, error, _elapsed_ms(started))
            if error is e:
                raise
            raise error from e

        diagnostics = self._collect_diagnostics(name, payload)
        result = ProcessingResult.completed(name, payload, _elapsed_ms(started), diagnostics)
        self._memo[name] = result
        self.statistics.successful_sources += 1
        self.statistics.total_records += result.record_count

        logger.info(
            "Completed processing for source: %s (%d records in %dms)",
            name, result.record_count, result.processing_time_ms,
        )
        return result

    async def process_all(self, names: Iterable[str] | None = None) -> RunSummary:
        """Process every configured source (or ``names``), isolating failures.

        A failing source is reported as ``error``; its siblings still run.
        Sources depending on a failed source fail as well.

        Returns:
            RunSummary with statistics and one result per requested name
        """
        self.reset()
        self.statistics.started_at = utc_now()
        requested = list(self.definitions if names is None else names)
        self.statistics.total_sources = len(requested)
        logger.info("Starting processing for %d sources", len(requested))

        results: dict[str, ProcessingResult] = {}
        for name in requested:
            try:
                results[name] = await self.process_source(name)
            except ProcessingError as e:
                logger.error("Failed to process source %s, continuing with others", name)
                if name not in self._memo:
                    self._record_failure(name, e, 0)
                results[name] = self._memo[name]

        self.statistics.ended_at = utc_now()
        self._log_summary()
        return RunSummary(statistics=self.statistics, results=results)

    async def _resolve_dependencies(
        self, definition: SourceDefinition
    ) -> dict[str, ProcessingResult]:
        # The name stays on the resolution stack only while its dependencies
        # resolve, not while the source itself runs.
        self._resolving.append(definition.name)
        try:
            resolved: dict[str, ProcessingResult] = {}
            if definition.dependencies:
                logger.debug(
                    "Processing %d dependencies for %s",
                    len(definition.dependencies), definition.name,
                )
            for dep_name in definition.dependencies:
                resolved[dep_name] = await self.process_source(dep_name)
            return resolved
        finally:
            self._resolving.pop()

    def _instantiate(
        self,
        definition: SourceDefinition,
        dependencies: Mapping[str, ProcessingResult],
    ) -> BaseSource:
        factory = self._factories.get(definition.name)
        if factory is None:
            raise ProcessingError(
                f"Source type not registered: {definition.source_type}",
                ErrorCategory.CONFIG_ERROR,
                definition.name,
                {"type": definition.source_type, "registered": self.registry.names()},
            )
        return factory(definition.config, dependencies, name=definition.name, cache=self.cache)

    def _collect_diagnostics(self, name: str, payload: Any) -> tuple[Diagnostic, ...]:
        metadata = payload.get("metadata") if isinstance(payload, dict) else None
        raw = metadata.get("diagnostics") if isinstance(metadata, dict) else None
        if not raw:
            return ()

        diagnostics = []
        for item in raw:
            try:
                diagnostic = Diagnostic.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring malformed diagnostic from %s: %s", name, e)
                continue
            diagnostics.append(diagnostic)
            self.statistics.record(diagnostic)
            self.sink.emit(diagnostic)
        return tuple(diagnostics)

    def _record_failure(self, name: str, error: ProcessingError, elapsed_ms: int) -> None:
        self._failures[name] = error
        self._memo[name] = ProcessingResult.failed(name, error.message, elapsed_ms)
        self.statistics.failed_sources += 1

        diagnostic = Diagnostic(
            DiagnosticKind.ERROR,
            error.category,
            name,
            error.message,
            {**error.context, "origin": error.source_name},
        )
        self.statistics.record(diagnostic)
        self.sink.emit(diagnostic)
        logger.error("Failed to process source %s: %s", name, error.formatted())

    def _log_summary(self) -> None:
        stats = self.statistics
        logger.info("=== Processing Summary ===")
        logger.info("Total Sources: %d", stats.total_sources)
        logger.info("Successful: %d", stats.successful_sources)
        logger.info("Failed: %d", stats.failed_sources)
        logger.info("Skipped: %d", stats.skipped_sources)
        logger.info("Total Records: %d", stats.total_records)
        logger.info("Total Time: %dms", stats.total_processing_ms)
        if stats.errors:
            logger.warning("Errors: %d", len(stats.errors))
        if stats.warnings:
            logger.warning("Warnings: %d", len(stats.warnings))
