"""Executor outcomes.

An executor reports the result of one transaction as either ``Success``
carrying a value or ``Failure`` carrying an optional error payload. A failure
is a value, not an exception: runners report it through ``on_batch_error``
and decide whether to retry, halt, or skip.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from functools import wraps
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from batchjob.lib.errors import ExecutorFailure

logger = logging.getLogger(__name__)

__all__ = [
    "Success",
    "Failure",
    "Outcome",
    "Executor",
    "is_success",
    "coerce_outcome",
    "resolve_outcome",
    "capture_failures",
]

K = TypeVar("K")
E = TypeVar("E")


@dataclass(frozen=True)
class Success(Generic[K]):
    """Transaction processed; ``value`` is folded into the accumulator."""

    value: K

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure(Generic[E]):
    """Transaction failed; ``error`` is handed to ``on_batch_error``."""

    error: Optional[E] = None

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success[K], Failure[Any]]
Executor = Callable[[Sequence[Any]], Union[Awaitable[Any], Any]]


def is_success(outcome: Any) -> bool:
    """Whether an outcome is a ``Success``."""
    return isinstance(outcome, Success)


def coerce_outcome(raw: Any) -> Outcome[Any]:
    """Normalize an executor return value into ``Success`` or ``Failure``.

    Besides the dataclasses, mappings shaped like ``{"ok": True, "result": x}``
    or ``{"ok": False, "error": e}`` are accepted.

    Raises:
        TypeError: If ``raw`` is neither an outcome nor an ``ok`` mapping.
    """
    if isinstance(raw, (Success, Failure)):
        return raw

    if isinstance(raw, Mapping) and "ok" in raw:
        if raw["ok"]:
            return Success(raw.get("result"))
        return Failure(raw.get("error"))

    raise TypeError(
        "Executor must return Success, Failure or a mapping with an 'ok' key, "
        f"got {type(raw).__name__}"
    )


async def resolve_outcome(executor: Executor, transaction: Sequence[Any]) -> Outcome[Any]:
    """Invoke ``executor`` once and await its outcome if needed."""
    result = executor(transaction)
    if inspect.isawaitable(result):
        result = await result
    return coerce_outcome(result)


def capture_failures(executor: Executor) -> Callable[[Sequence[Any]], Awaitable[Outcome[Any]]]:
    """Wrap an executor so raised exceptions become ``Failure`` outcomes.

    Use when the executor calls code that signals errors by raising (HTTP
    clients, database drivers) and a failed transaction should be reported
    and retried or skipped instead of aborting the run.

    Example:
        @capture_failures
        async def write_rows(rows):
            await client.insert(rows)
            return Success(len(rows))
    """

    @wraps(executor)
    async def wrapper(transaction: Sequence[Any]) -> Outcome[Any]:
        try:
            return await resolve_outcome(executor, transaction)
        except Exception as exc:
            logger.warning(
                "Executor raised on transaction of %d records: %s",
                len(transaction),
                exc,
            )
            return Failure(
                ExecutorFailure(
                    f"Executor raised {type(exc).__name__}: {exc}",
                    cause=exc,
                    transaction_length=len(transaction),
                )
            )

    return wrapper
