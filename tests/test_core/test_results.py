"""Tests for ProcessingResult, record counting and run statistics."""

from datetime import datetime, timedelta, timezone

from cragdata.core.diagnostics import Diagnostic
from cragdata.core.errors import ErrorCategory
from cragdata.core.results import (
    ProcessingResult,
    ProcessingStatus,
    RunStatistics,
    RunSummary,
    count_records,
    payload_version,
)


class TestCountRecords:
    """Test record counting heuristics."""

    def test_list(self) -> None:
        assert count_records([1, 2, 3]) == 3

    def test_dict_sums_list_fields(self) -> None:
        payload = {"regions": [1, 2], "summits": [1, 2, 3], "metadata": {}}
        assert count_records(payload) == 5

    def test_dict_without_lists_counts_one(self) -> None:
        assert count_records({"metadata": {}}) == 1

    def test_none(self) -> None:
        assert count_records(None) == 0

    def test_scalar(self) -> None:
        assert count_records("x") == 1


class TestPayloadVersion:
    """Test data version extraction."""

    def test_reads_processed_at(self) -> None:
        payload = {"metadata": {"processed_at": "2024-01-15T10:00:00+00:00"}}
        assert payload_version(payload) == "2024-01-15T10:00:00+00:00"

    def test_missing_metadata(self) -> None:
        assert payload_version({"items": []}) is None
        assert payload_version(None) is None
        assert payload_version({"metadata": "x"}) is None


class TestProcessingResult:
    """Test the result envelope."""

    def test_completed(self) -> None:
        payload = {"climbers": [{}, {}], "metadata": {"processed_at": "2024-01-15T10:00:00+00:00"}}
        result = ProcessingResult.completed("climbers", payload, 12)

        assert result.status is ProcessingStatus.COMPLETED
        assert result.ok
        assert result.record_count == 2
        assert result.processing_time_ms == 12
        assert result.version == "2024-01-15T10:00:00+00:00"

    def test_skipped(self) -> None:
        result = ProcessingResult.skipped("climbers", "disabled")
        assert result.status is ProcessingStatus.SKIPPED
        assert result.reason == "disabled"
        assert result.payload is None
        assert not result.ok
        assert result.version is None

    def test_failed(self) -> None:
        result = ProcessingResult.failed("climbers", "File not found", 3)
        assert result.status is ProcessingStatus.ERROR
        assert result.error == "File not found"
        assert result.record_count == 0

    def test_to_dict(self) -> None:
        diag = Diagnostic.warning(ErrorCategory.VALIDATION_ERROR, "a", "w")
        result = ProcessingResult.completed("a", {"x": [1]}, 5, (diag,))
        data = result.to_dict()

        assert data["source"] == "a"
        assert data["status"] == "completed"
        assert data["record_count"] == 1
        assert data["diagnostics"][0]["message"] == "w"
        assert "payload" not in data
        assert result.to_dict(include_payload=True)["payload"] == {"x": [1]}


class TestRunStatistics:
    """Test run-level aggregation."""

    def test_record_splits_kinds(self) -> None:
        stats = RunStatistics()
        stats.record(Diagnostic.error(ErrorCategory.SOURCE_ERROR, "a", "e"))
        stats.record(Diagnostic.warning(ErrorCategory.VALIDATION_ERROR, "a", "w"))
        assert len(stats.errors) == 1
        assert len(stats.warnings) == 1

    def test_timing(self) -> None:
        start = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        stats = RunStatistics(
            total_sources=4,
            started_at=start,
            ended_at=start + timedelta(seconds=2),
        )
        assert stats.total_processing_ms == 2000
        assert stats.average_ms_per_source == 500.0

    def test_timing_defaults(self) -> None:
        stats = RunStatistics()
        assert stats.total_processing_ms == 0
        assert stats.average_ms_per_source == 0.0

    def test_summary_to_dict(self) -> None:
        stats = RunStatistics(total_sources=2, successful_sources=1, failed_sources=1)
        stats.record(Diagnostic.error(ErrorCategory.SOURCE_ERROR, "b", "gone"))
        summary = RunSummary(
            statistics=stats,
            results={
                "a": ProcessingResult.completed("a", {"x": [1]}, 1),
                "b": ProcessingResult.failed("b", "gone"),
            },
        )

        assert list(summary.completed) == ["a"]
        data = summary.to_dict()
        assert data["summary"]["successful_sources"] == 1
        assert data["summary"]["error_count"] == 1
        assert [r["status"] for r in data["results"]] == ["completed", "error"]
        assert data["errors"][0]["message"] == "gone"
