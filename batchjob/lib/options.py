"""Batch job options.

``ReducerOptions`` describes how successful results are folded,
``BatchingOptions`` how records are split and how failures are handled,
and ``ProgressInfo`` is the snapshot handed to ``on_batch_success``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar, Union

from batchjob.lib.chunking import validate_transaction_size
from batchjob.lib.errors import ConfigurationError
from batchjob.lib.resilience import RetryConfig

__all__ = [
    "ProgressInfo",
    "ReducerOptions",
    "BatchingOptions",
    "SuccessCallback",
    "ErrorCallback",
]

K = TypeVar("K")
U = TypeVar("U")


@dataclass(frozen=True)
class ProgressInfo:
    """Run state at the moment a transaction succeeded.

    ``remaining`` counts records not yet folded; it is None for concurrent
    runs, where ``step`` only identifies the transaction.
    """

    remaining: Optional[int]
    step: int
    transaction_size: int
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "remaining": self.remaining,
            "step": self.step,
            "transaction_size": self.transaction_size,
            "total": self.total,
        }


SuccessCallback = Callable[[Any, Optional[ProgressInfo]], None]
ErrorCallback = Callable[[Any], None]


@dataclass
class ReducerOptions(Generic[K, U]):
    """Fold step: ``reducer(value, accumulator)`` returns the new accumulator."""

    reducer: Callable[[K, U], U]
    accumulator: U

    @classmethod
    def coerce(cls, value: Union["ReducerOptions[K, U]", Mapping[str, Any]]) -> "ReducerOptions[K, U]":
        if isinstance(value, ReducerOptions):
            options = value
        elif isinstance(value, Mapping):
            missing = [key for key in ("reducer", "accumulator") if key not in value]
            if missing:
                raise ConfigurationError(
                    f"reducer options missing: {', '.join(missing)}",
                    field="reducer_options",
                )
            options = cls(reducer=value["reducer"], accumulator=value["accumulator"])
        else:
            raise ConfigurationError(
                "reducer_options must be ReducerOptions or a mapping",
                field="reducer_options",
                value=type(value).__name__,
            )

        if not callable(options.reducer):
            raise ConfigurationError("reducer must be callable", field="reducer")
        return options


# camelCase spellings accepted by from_dict
_KEY_ALIASES = {
    "transactionSize": "transaction_size",
    "onBatchSuccess": "on_batch_success",
    "onBatchError": "on_batch_error",
    "retryConfig": "retry_config",
    "maxConcurrency": "max_concurrency",
}


@dataclass
class BatchingOptions:
    """How records are split into transactions and how outcomes are handled.

    Attributes:
        transaction_size: Records per transaction (must be > 0)
        on_batch_success: Called with (value, progress) per successful transaction
        on_batch_error: Called with the failure's error payload
        retry: Sequential runs only; retry a failed transaction instead of halting
        retry_config: Optional retry limit/backoff used when retry is enabled
        max_concurrency: Concurrent runs only; cap on in-flight executor calls
            (None = launch every transaction at once)
    """

    transaction_size: int
    on_batch_success: Optional[SuccessCallback] = None
    on_batch_error: Optional[ErrorCallback] = None
    retry: bool = False
    retry_config: Optional[RetryConfig] = None
    max_concurrency: Optional[int] = None

    def validate(self) -> "BatchingOptions":
        """Check the options, raising ConfigurationError on the first problem."""
        validate_transaction_size(self.transaction_size)

        for name in ("on_batch_success", "on_batch_error"):
            callback = getattr(self, name)
            if callback is not None and not callable(callback):
                raise ConfigurationError(f"{name} must be callable", field=name)

        if not isinstance(self.retry, bool):
            raise ConfigurationError(
                "retry must be true or false", field="retry", value=self.retry
            )

        if self.max_concurrency is not None and (
            isinstance(self.max_concurrency, bool)
            or not isinstance(self.max_concurrency, int)
            or self.max_concurrency < 1
        ):
            raise ConfigurationError(
                "max_concurrency must be a positive integer or None",
                field="max_concurrency",
                value=self.max_concurrency,
            )

        if self.retry_config is not None:
            self.retry_config.validate()
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BatchingOptions":
        """Create validated options from a mapping.

        Both snake_case and camelCase keys are accepted; ``retry_config`` may
        be a RetryConfig or a nested mapping.
        """
        normalized: Dict[str, Any] = {}
        for key, value in data.items():
            normalized[_KEY_ALIASES.get(key, key)] = value

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(normalized) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown batching options: {', '.join(unknown)}",
                field="batching_options",
                suggestion=f"Valid options: {', '.join(sorted(known))}",
            )
        if "transaction_size" not in normalized:
            raise ConfigurationError(
                "transaction_size is required", field="transaction_size"
            )

        retry_config = normalized.get("retry_config")
        if isinstance(retry_config, Mapping):
            normalized["retry_config"] = RetryConfig.from_dict(dict(retry_config))

        return cls(**normalized).validate()

    @classmethod
    def coerce(cls, value: Union["BatchingOptions", Mapping[str, Any]]) -> "BatchingOptions":
        if isinstance(value, BatchingOptions):
            return value.validate()
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise ConfigurationError(
            "batching_options must be BatchingOptions or a mapping",
            field="batching_options",
            value=type(value).__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view; callbacks are reported by presence only."""
        return {
            "transaction_size": self.transaction_size,
            "retry": self.retry,
            "retry_config": self.retry_config.to_dict() if self.retry_config else None,
            "max_concurrency": self.max_concurrency,
            "has_on_batch_success": self.on_batch_success is not None,
            "has_on_batch_error": self.on_batch_error is not None,
        }
