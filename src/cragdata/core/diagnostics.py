"""Diagnostics: typed, non-fatal notes attached to a processing attempt.

Sources emit diagnostics while validating records; the orchestrator forwards
them to an injected sink. Two sinks ship with the engine: LoggingSink writes
through the standard logging module, CollectingSink keeps them in memory.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from cragdata.core.errors import ErrorCategory, ProcessingError

logger = logging.getLogger(__name__)


class DiagnosticKind(Enum):
    """Severity of a diagnostic."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A typed error or warning record."""

    kind: DiagnosticKind
    category: ErrorCategory
    source_name: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def error(
        cls,
        category: ErrorCategory,
        source_name: str,
        message: str,
        **context: Any,
    ) -> "Diagnostic":
        return cls(DiagnosticKind.ERROR, category, source_name, message, context)

    @classmethod
    def warning(
        cls,
        category: ErrorCategory,
        source_name: str,
        message: str,
        **context: Any,
    ) -> "Diagnostic":
        return cls(DiagnosticKind.WARNING, category, source_name, message, context)

    @classmethod
    def from_error(cls, error: ProcessingError) -> "Diagnostic":
        """Convert a fatal ProcessingError into an error diagnostic."""
        return cls(
            DiagnosticKind.ERROR,
            error.category,
            error.source_name,
            error.message,
            dict(error.context),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Diagnostic":
        """Rebuild a diagnostic from its ``to_dict`` form."""
        return cls(
            kind=DiagnosticKind(data["kind"]),
            category=ErrorCategory(data["category"]),
            source_name=data["source_name"],
            message=data["message"],
            context=dict(data.get("context") or {}),
        )

    @property
    def is_error(self) -> bool:
        return self.kind is DiagnosticKind.ERROR

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "kind": self.kind.value,
            "category": self.category.value,
            "source_name": self.source_name,
            "message": self.message,
            "context": self.context,
        }


class DiagnosticSink(Protocol):
    """Receiver for diagnostics emitted during a run."""

    def emit(self, diagnostic: Diagnostic) -> None: ...


class LoggingSink:
    """Writes diagnostics to a logger (errors and warnings both at WARNING)."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def emit(self, diagnostic: Diagnostic) -> None:
        self.log.warning(
            "[%s] %s %s: %s",
            diagnostic.category.value,
            diagnostic.kind.value,
            diagnostic.source_name,
            diagnostic.message,
        )


class CollectingSink:
    """Keeps every emitted diagnostic in memory."""

    def __init__(self) -> None:
        self.diagnostics: list[Diagnostic] = []

    def emit(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if not d.is_error]
