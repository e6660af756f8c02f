"""Retry policy for the sequential runner.

With ``retry=True`` and no ``RetryConfig`` a failing transaction is retried
forever with no delay: an executor that never succeeds keeps the run on that
transaction indefinitely. ``RetryConfig`` is the opt-in hook for a retry
limit and backoff between attempts.

Implementation: Uses tenacity internally. Retry is driven by the outcome
value (``retry_if_result``) rather than by exceptions, so a ``Failure`` is
never raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import tenacity
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from batchjob.lib.errors import ConfigurationError
from batchjob.lib.outcome import Failure

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "build_retrying"]

AfterCallback = Callable[[tenacity.RetryCallState], None]


class RetryConfig:
    """Configuration for retrying a failed transaction.

    Args:
        max_attempts: Total attempts per transaction (None = unbounded)
        backoff_seconds: Base delay between attempts (0 = no delay)
        exponential: Use exponential backoff (default True)
        jitter: Add random jitter to backoff (default False)
        max_backoff_seconds: Upper bound for exponential backoff

    Example:
        options = BatchingOptions(
            transaction_size=500,
            retry=True,
            retry_config=RetryConfig(max_attempts=5, backoff_seconds=0.5),
        )
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        backoff_seconds: float = 0.0,
        exponential: bool = True,
        jitter: bool = False,
        max_backoff_seconds: float = 60.0,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.max_backoff_seconds = max_backoff_seconds

    @classmethod
    def unbounded(cls) -> "RetryConfig":
        """Retry forever without delay."""
        return cls()

    @classmethod
    def limited(cls, max_attempts: int, backoff_seconds: float = 1.0) -> "RetryConfig":
        """Give up on a transaction after ``max_attempts`` failed attempts."""
        return cls(max_attempts=max_attempts, backoff_seconds=backoff_seconds)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        """Create from a plain dictionary (e.g. a YAML section)."""
        known = {
            "max_attempts",
            "backoff_seconds",
            "exponential",
            "jitter",
            "max_backoff_seconds",
        }
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown retry_config keys: {', '.join(unknown)}",
                field="retry_config",
            )
        config = cls(**data)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "backoff_seconds": self.backoff_seconds,
            "exponential": self.exponential,
            "jitter": self.jitter,
            "max_backoff_seconds": self.max_backoff_seconds,
        }

    def validate(self) -> None:
        """Raise ConfigurationError for unusable settings."""
        if self.max_attempts is not None and (
            isinstance(self.max_attempts, bool)
            or not isinstance(self.max_attempts, int)
            or self.max_attempts < 1
        ):
            raise ConfigurationError(
                "max_attempts must be a positive integer or None",
                field="retry_config.max_attempts",
                value=self.max_attempts,
            )
        for name in ("backoff_seconds", "max_backoff_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(
                    f"{name} must be a number",
                    field=f"retry_config.{name}",
                    value=value,
                )
        if self.backoff_seconds < 0:
            raise ConfigurationError(
                "backoff_seconds must not be negative",
                field="retry_config.backoff_seconds",
                value=self.backoff_seconds,
            )
        if self.max_backoff_seconds < self.backoff_seconds:
            raise ConfigurationError(
                "max_backoff_seconds must be >= backoff_seconds",
                field="retry_config.max_backoff_seconds",
                value=self.max_backoff_seconds,
            )

    def stop_strategy(self) -> stop_base:
        if self.max_attempts is None:
            return tenacity.stop_never
        return tenacity.stop_after_attempt(self.max_attempts)

    def wait_strategy(self) -> wait_base:
        if self.backoff_seconds <= 0:
            return tenacity.wait_none()

        wait: wait_base
        if self.exponential:
            wait = tenacity.wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.max_backoff_seconds,
            )
        else:
            wait = tenacity.wait_fixed(self.backoff_seconds)

        if self.jitter:
            wait = wait + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, "
            f"backoff_seconds={self.backoff_seconds}, "
            f"exponential={self.exponential}, jitter={self.jitter})"
        )


def _is_failure(outcome: Any) -> bool:
    return isinstance(outcome, Failure)


def _last_outcome(retry_state: tenacity.RetryCallState) -> Any:
    # Called once the stop condition is hit; hand back the final Failure.
    return retry_state.outcome.result() if retry_state.outcome else None


def build_retrying(
    retry: bool,
    config: Optional[RetryConfig],
    after: AfterCallback,
) -> tenacity.AsyncRetrying:
    """Build the AsyncRetrying controller for one transaction.

    ``after`` runs once per ``Failure`` outcome, before the stop check. When
    attempts run out the last ``Failure`` is returned rather than raised.
    Exceptions raised by the executor or by ``after`` propagate unchanged.
    """
    if not retry:
        stop: stop_base = tenacity.stop_after_attempt(1)
        wait: wait_base = tenacity.wait_none()
    else:
        config = config or RetryConfig.unbounded()
        stop = config.stop_strategy()
        wait = config.wait_strategy()

    return tenacity.AsyncRetrying(
        stop=stop,
        wait=wait,
        retry=tenacity.retry_if_result(_is_failure),
        after=after,
        retry_error_callback=_last_outcome,
        sleep=asyncio.sleep,
    )
