"""Diagnostic and result model for cragdata.

Modules:
    - errors: ProcessingError, category taxonomy, idempotent wrapping
    - diagnostics: Diagnostic records and sinks
    - results: ProcessingResult envelope and RunStatistics
"""

from cragdata.core.errors import (
    CircularDependencyError,
    ErrorCategory,
    ProcessingError,
    wrap_error,
)
from cragdata.core.diagnostics import (
    CollectingSink,
    Diagnostic,
    DiagnosticKind,
    DiagnosticSink,
    LoggingSink,
)
from cragdata.core.results import (
    ProcessingResult,
    ProcessingStatus,
    RunStatistics,
    RunSummary,
    count_records,
    payload_version,
)

__all__ = [
    "CircularDependencyError",
    "ErrorCategory",
    "ProcessingError",
    "wrap_error",
    "CollectingSink",
    "Diagnostic",
    "DiagnosticKind",
    "DiagnosticSink",
    "LoggingSink",
    "ProcessingResult",
    "ProcessingStatus",
    "RunStatistics",
    "RunSummary",
    "count_records",
    "payload_version",
]
