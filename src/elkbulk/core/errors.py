"""
Error types shared by the normalization and delivery pipeline.

Errors raised inside the pipeline carry a category and a severity so that
the diagnostics channel can report them uniformly. Callers on the hot path
(normalizer, sink) contain these errors; they only surface to the host for
configuration problems.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Broad classification of pipeline errors."""

    SERIALIZATION = "serialization"
    NETWORK = "network"
    CONFIG = "config"
    VALIDATION = "validation"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Structured context attached to an :class:`ElkBulkError`."""

    category: ErrorCategory
    severity: ErrorSeverity
    timestamp: float = field(default_factory=time.time)
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }


def create_error_context(
    category: ErrorCategory,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    **details: Any,
) -> ErrorContext:
    return ErrorContext(category=category, severity=severity, details=details)


class ElkBulkError(Exception):
    """Base error for elkbulk.

    Args:
        message: Human readable description.
        category: Error category; defaults to the context's category.
        error_context: Optional structured context.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        error_context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if category is None:
            category = (
                error_context.category
                if error_context is not None
                else ErrorCategory.VALIDATION
            )
        self.category = category
        self.error_context = error_context or create_error_context(category)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message
