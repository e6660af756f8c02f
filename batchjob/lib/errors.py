"""Structured exception hierarchy for batch jobs.

Executor failures are normally reported as ``Failure`` outcomes and never
raised by the runners. The exceptions here cover configuration mistakes and
the payload used when raised executor exceptions are captured as failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "BatchJobError",
    "ConfigurationError",
    "ExecutorFailure",
]


class BatchJobError(Exception):
    """Base exception for all batch job errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(BatchJobError):
    """Invalid batch job configuration.

    Raised before any executor invocation, e.g. for a non-positive
    transaction size.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)

        super().__init__(message, details=details, **kwargs)


class ExecutorFailure(BatchJobError):
    """Error payload for an executor invocation that raised.

    Produced by ``capture_failures`` and delivered to ``on_batch_error``
    inside a ``Failure`` outcome; the runners never raise it.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        transaction_length: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.cause = cause
        self.transaction_length = transaction_length

        details = kwargs.pop("details", {})
        if transaction_length is not None:
            details["transaction_length"] = transaction_length
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)
