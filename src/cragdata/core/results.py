"""Processing results and run-level statistics.

ProcessingResult is the envelope the orchestrator creates once per source per
run. RunStatistics aggregates counters over one ``process_all`` call.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from cragdata.core.diagnostics import Diagnostic


class ProcessingStatus(Enum):
    """Terminal state of one source in one run."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def count_records(payload: Any) -> int:
    """Count records in a payload for reporting.

    A list counts its items; a mapping counts the items of all its list-valued
    fields (or 1 if it has none); anything else counts as a single record.
    """
    if payload is None:
        return 0
    if isinstance(payload, list):
        return len(payload)
    if isinstance(payload, dict):
        count = sum(len(value) for value in payload.values() if isinstance(value, list))
        return count or 1
    return 1


def payload_version(payload: Any) -> str | None:
    """Return the ``metadata.processed_at`` stamp of a payload, if any.

    This is the version of the data itself: it is set when the payload is
    parsed and survives caching, unlike ``ProcessingResult.processed_at``.
    """
    if not isinstance(payload, dict):
        return None
    metadata = payload.get("metadata")
    if not isinstance(metadata, dict):
        return None
    stamp = metadata.get("processed_at")
    return str(stamp) if stamp else None


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of processing one source.

    Downstream consumers read ``payload`` of completed results only and must
    not mutate it.
    """

    source_name: str
    status: ProcessingStatus
    payload: dict[str, Any] | None = None
    record_count: int = 0
    processed_at: datetime = field(default_factory=utc_now)
    processing_time_ms: int = 0
    error: str | None = None
    reason: str | None = None
    diagnostics: tuple[Diagnostic, ...] = ()

    @classmethod
    def completed(
        cls,
        source_name: str,
        payload: dict[str, Any],
        processing_time_ms: int,
        diagnostics: tuple[Diagnostic, ...] = (),
    ) -> "ProcessingResult":
        return cls(
            source_name=source_name,
            status=ProcessingStatus.COMPLETED,
            payload=payload,
            record_count=count_records(payload),
            processing_time_ms=processing_time_ms,
            diagnostics=diagnostics,
        )

    @classmethod
    def skipped(
        cls, source_name: str, reason: str, processing_time_ms: int = 0
    ) -> "ProcessingResult":
        return cls(
            source_name=source_name,
            status=ProcessingStatus.SKIPPED,
            reason=reason,
            processing_time_ms=processing_time_ms,
        )

    @classmethod
    def failed(
        cls, source_name: str, error: str, processing_time_ms: int = 0
    ) -> "ProcessingResult":
        return cls(
            source_name=source_name,
            status=ProcessingStatus.ERROR,
            error=error,
            processing_time_ms=processing_time_ms,
        )

    @property
    def ok(self) -> bool:
        return self.status is ProcessingStatus.COMPLETED

    @property
    def version(self) -> str | None:
        """Data version used for dependency freshness and cache keys."""
        return payload_version(self.payload)

    def to_dict(self, include_payload: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "source": self.source_name,
            "status": self.status.value,
            "record_count": self.record_count,
            "processed_at": self.processed_at.isoformat(),
            "processing_time_ms": self.processing_time_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.reason is not None:
            data["reason"] = self.reason
        if self.diagnostics:
            data["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        if include_payload:
            data["payload"] = self.payload
        return data


@dataclass
class RunStatistics:
    """Aggregate counters for one orchestrator run."""

    total_sources: int = 0
    processed_sources: int = 0
    successful_sources: int = 0
    failed_sources: int = 0
    skipped_sources: int = 0
    total_records: int = 0
    errors: list[Diagnostic] = field(default_factory=list)
    warnings: list[Diagnostic] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def record(self, diagnostic: Diagnostic) -> None:
        if diagnostic.is_error:
            self.errors.append(diagnostic)
        else:
            self.warnings.append(diagnostic)

    @property
    def total_processing_ms(self) -> int:
        if self.started_at is None or self.ended_at is None:
            return 0
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    @property
    def average_ms_per_source(self) -> float:
        if self.total_sources == 0:
            return 0.0
        return self.total_processing_ms / self.total_sources

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_sources": self.total_sources,
            "processed_sources": self.processed_sources,
            "successful_sources": self.successful_sources,
            "failed_sources": self.failed_sources,
            "skipped_sources": self.skipped_sources,
            "total_records": self.total_records,
            "total_processing_ms": self.total_processing_ms,
            "average_ms_per_source": self.average_ms_per_source,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass
class RunSummary:
    """Everything a ``process_all`` call produced."""

    statistics: RunStatistics
    results: dict[str, ProcessingResult]

    @property
    def completed(self) -> dict[str, ProcessingResult]:
        return {name: r for name, r in self.results.items() if r.ok}

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.statistics.to_dict(),
            "results": [r.to_dict() for r in self.results.values()],
            "errors": [d.to_dict() for d in self.statistics.errors],
            "warnings": [d.to_dict() for d in self.statistics.warnings],
        }
