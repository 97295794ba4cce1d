"""Typed processing errors for the cragdata engine.

Every failure that crosses a phase boundary (fetch, parse, validate, dependency
resolution) is expressed as a ProcessingError with a category from a closed
taxonomy. Wrapping is idempotent so errors can be re-wrapped at every layer
without nesting.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Closed taxonomy of processing error categories."""

    CONFIG_ERROR = "config-error"
    SOURCE_ERROR = "source-error"
    PARSE_ERROR = "parse-error"
    VALIDATION_ERROR = "validation-error"
    TRANSFORM_ERROR = "transform-error"
    IMPORT_ERROR = "import-error"
    NETWORK_ERROR = "network-error"
    FILE_ERROR = "file-error"


class ProcessingError(Exception):
    """Error raised while processing a data source.

    Args:
        message: Human-readable description
        category: Error category
        source_name: Name of the source that produced the error
        context: Free-form details (file paths, indices, original errors)
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        source_name: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = ErrorCategory(category)
        self.source_name = source_name
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def formatted(self) -> str:
        """Format as ``[category] source: message`` for logging."""
        return f"[{self.category.value}] {self.source_name}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "source_name": self.source_name,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class CircularDependencyError(ProcessingError):
    """Raised when the dependency graph contains a cycle.

    Attributes:
        cycle: Source names along the cycle, first and last entries equal
    """

    def __init__(self, cycle: list[str]) -> None:
        path = " -> ".join(cycle)
        super().__init__(
            f"Circular dependency detected: {path}",
            ErrorCategory.CONFIG_ERROR,
            cycle[-1],
            {"cycle": list(cycle)},
        )
        self.cycle = list(cycle)


def wrap_error(
    error: BaseException,
    category: ErrorCategory,
    source_name: str,
    context: dict[str, Any] | None = None,
) -> ProcessingError:
    """Wrap an exception in ProcessingError, never double-wrapping.

    Args:
        error: Original exception
        category: Category for the new error
        source_name: Source that produced the error
        context: Additional details merged into the error context

    Returns:
        ``error`` itself if it already is a ProcessingError, else a new one
    """
    if isinstance(error, ProcessingError):
        return error

    return ProcessingError(
        str(error) or type(error).__name__,
        category,
        source_name,
        {
            **(context or {}),
            "original_error": str(error),
            "error_type": type(error).__name__,
        },
    )
