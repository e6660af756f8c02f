"""Sequential and concurrent batch job runners.

Both runners split the records into fixed-size transactions, drive each
transaction through the executor, fold successful results into a single
accumulator and report progress/failure through the configured callbacks.

- batch_job: one transaction at a time; a failure halts the run unless
  retry is enabled, in which case the same transaction is re-executed.
- concurrent_batch_job: every transaction launched at once; results are
  folded in transaction order after all of them settle. No retry.

A failed transaction never raises. The caller sees the ``on_batch_error``
call and a possibly partial accumulator. Exceptions raised by the executor
itself or by the callbacks propagate and abort the run.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from typing import Any, Generator, List, Mapping, Optional, Sequence, TypeVar, Union

import tenacity

from batchjob.lib.chunking import chunk_records, transaction_bounds, transaction_count
from batchjob.lib.observability import RunMetrics, get_structlog_logger
from batchjob.lib.options import BatchingOptions, ProgressInfo, ReducerOptions
from batchjob.lib.outcome import Executor, Failure, Outcome, Success, resolve_outcome
from batchjob.lib.resilience import build_retrying

logger = get_structlog_logger(__name__)

__all__ = [
    "batch_job",
    "concurrent_batch_job",
    "run_batch_job",
    "run_concurrent_batch_job",
]

T = TypeVar("T")
U = TypeVar("U")

ReducerLike = Union[ReducerOptions[Any, U], Mapping[str, Any]]
BatchingLike = Union[BatchingOptions, Mapping[str, Any]]


def _apply_success(
    outcome: Success[Any],
    accumulator: Any,
    reducer_options: ReducerOptions[Any, Any],
    options: BatchingOptions,
    progress: ProgressInfo,
) -> Any:
    accumulator = reducer_options.reducer(outcome.value, accumulator)
    if options.on_batch_success is not None:
        options.on_batch_success(outcome.value, progress)
    return accumulator


def _report_failure(outcome: Failure[Any], options: BatchingOptions) -> None:
    if options.on_batch_error is not None:
        options.on_batch_error(outcome.error)


@contextmanager
def _execute_phase(metrics: Optional[RunMetrics]) -> Generator[None, None, None]:
    if metrics is None:
        yield
        return
    with metrics.time_phase("execute"):
        yield


async def _run_transaction(
    executor: Executor,
    transaction: Sequence[Any],
    step: int,
    options: BatchingOptions,
    metrics: Optional[RunMetrics],
) -> Outcome[Any]:
    """Execute one transaction, retrying it while the policy allows."""
    attempts = 0

    async def attempt(records: Sequence[Any]) -> Outcome[Any]:
        nonlocal attempts
        attempts += 1
        return await resolve_outcome(executor, records)

    def after_failure(retry_state: tenacity.RetryCallState) -> None:
        failure = retry_state.outcome.result() if retry_state.outcome else Failure()
        logger.warning(
            "transaction_failed",
            step=step,
            attempt=retry_state.attempt_number,
            error=repr(failure.error),
        )
        if metrics is not None:
            metrics.increment("transactions_failed")
        _report_failure(failure, options)

    retrying = build_retrying(options.retry, options.retry_config, after_failure)
    try:
        return await retrying(attempt, transaction)
    finally:
        if metrics is not None and attempts > 1:
            metrics.increment("retries", attempts - 1)


async def batch_job(
    executor: Executor,
    records: Sequence[T],
    reducer_options: ReducerLike[U],
    batching_options: BatchingLike,
    *,
    metrics: Optional[RunMetrics] = None,
) -> U:
    """Run ``executor`` over ``records`` one transaction at a time.

    Transaction ``i + 1`` never starts before transaction ``i`` has a
    successful outcome. On failure ``on_batch_error`` is called; with
    ``retry`` disabled the run halts and returns the accumulator so far,
    with ``retry`` enabled the same transaction is executed again (forever
    unless ``retry_config`` sets a limit).

    Args:
        executor: Callable taking one transaction and returning (or
            awaiting to) ``Success``/``Failure``
        records: Full input sequence, read only
        reducer_options: ``ReducerOptions`` or ``{"reducer", "accumulator"}``
        batching_options: ``BatchingOptions`` or an equivalent mapping
        metrics: Optional RunMetrics receiving counters and timings

    Returns:
        The final accumulator, partial if a failure stopped the run.

    Raises:
        ConfigurationError: Before any executor call, for invalid options.

    Example:
        async def insert(rows):
            await db.insert_many(rows)
            return Success(len(rows))

        written = await batch_job(
            insert,
            rows,
            ReducerOptions(reducer=lambda n, acc: acc + n, accumulator=0),
            BatchingOptions(transaction_size=500, retry=True),
        )
    """
    reducer_opts = ReducerOptions.coerce(reducer_options)
    options = BatchingOptions.coerce(batching_options)
    size = options.transaction_size
    total = len(records)

    if metrics is not None and metrics.mode is None:
        metrics.mode = "sequential"

    accumulator = reducer_opts.accumulator
    remaining = total
    step = 0
    start = time.time()

    logger.info(
        "batch_job_started",
        mode="sequential",
        total=total,
        transaction_size=size,
        transactions=transaction_count(total, size),
        retry=options.retry,
    )

    with _execute_phase(metrics):
        while remaining > 0:
            begin, end = transaction_bounds(step, size, total)
            transaction = records[begin:end]
            if len(transaction) == 0:
                break

            outcome = await _run_transaction(executor, transaction, step, options, metrics)
            if not isinstance(outcome, Success):
                logger.warning(
                    "batch_job_halted",
                    mode="sequential",
                    step=step,
                    remaining=remaining,
                )
                break

            remaining -= len(transaction)
            progress = ProgressInfo(
                remaining=remaining, step=step, transaction_size=size, total=total
            )
            accumulator = _apply_success(outcome, accumulator, reducer_opts, options, progress)
            if metrics is not None:
                metrics.increment("transactions_succeeded")
                metrics.increment("records_processed", len(transaction))
            logger.debug("transaction_succeeded", step=step, remaining=remaining)
            step += 1

    logger.info(
        "batch_job_completed",
        mode="sequential",
        transactions_succeeded=step,
        remaining=remaining,
        elapsed_seconds=round(time.time() - start, 3),
    )
    if metrics is not None:
        metrics.finish()
    return accumulator


async def concurrent_batch_job(
    executor: Executor,
    records: Sequence[T],
    reducer_options: ReducerLike[U],
    batching_options: BatchingLike,
    *,
    metrics: Optional[RunMetrics] = None,
) -> U:
    """Run ``executor`` on every transaction at once, then fold in order.

    All invocations are launched without waiting for each other and the
    runner waits until every one has settled. Outcomes are then folded in
    ascending transaction index, independent of completion order: a
    ``Success`` calls ``on_batch_success`` and is folded, a ``Failure`` calls
    ``on_batch_error`` and contributes nothing. ``retry`` is ignored.

    Fan-out is unbounded unless ``max_concurrency`` is set; size
    ``transaction_size`` for what the executor can take in parallel.
    The executor must be safe to run concurrently with itself.

    If an executor call raises instead of returning ``Failure``, the runner
    still waits for the other calls, then re-raises the first exception in
    transaction order without folding anything.
    """
    reducer_opts = ReducerOptions.coerce(reducer_options)
    options = BatchingOptions.coerce(batching_options)
    size = options.transaction_size
    total = len(records)

    if metrics is not None and metrics.mode is None:
        metrics.mode = "concurrent"
    if options.retry:
        logger.debug("retry_ignored", mode="concurrent")

    transactions = chunk_records(records, size)
    start = time.time()

    logger.info(
        "batch_job_started",
        mode="concurrent",
        total=total,
        transaction_size=size,
        transactions=len(transactions),
        max_concurrency=options.max_concurrency,
    )

    semaphore = (
        asyncio.Semaphore(options.max_concurrency)
        if options.max_concurrency is not None
        else None
    )

    async def launch(transaction: Sequence[Any]) -> Outcome[Any]:
        if semaphore is None:
            return await resolve_outcome(executor, transaction)
        async with semaphore:
            return await resolve_outcome(executor, transaction)

    with _execute_phase(metrics):
        settled: List[Any] = await asyncio.gather(
            *(launch(transaction) for transaction in transactions),
            return_exceptions=True,
        )

    for result in settled:
        if isinstance(result, BaseException):
            logger.error("batch_job_aborted", mode="concurrent", error=repr(result))
            raise result

    accumulator = reducer_opts.accumulator
    succeeded = 0
    for index, (transaction, outcome) in enumerate(zip(transactions, settled)):
        if isinstance(outcome, Success):
            progress = ProgressInfo(
                remaining=None, step=index, transaction_size=size, total=total
            )
            accumulator = _apply_success(outcome, accumulator, reducer_opts, options, progress)
            succeeded += 1
            if metrics is not None:
                metrics.increment("transactions_succeeded")
                metrics.increment("records_processed", len(transaction))
        else:
            logger.warning("transaction_failed", step=index, error=repr(outcome.error))
            if metrics is not None:
                metrics.increment("transactions_failed")
            _report_failure(outcome, options)

    logger.info(
        "batch_job_completed",
        mode="concurrent",
        transactions_succeeded=succeeded,
        transactions_failed=len(transactions) - succeeded,
        elapsed_seconds=round(time.time() - start, 3),
    )
    if metrics is not None:
        metrics.finish()
    return accumulator


def run_batch_job(
    executor: Executor,
    records: Sequence[T],
    reducer_options: ReducerLike[U],
    batching_options: BatchingLike,
    *,
    metrics: Optional[RunMetrics] = None,
) -> U:
    """Blocking wrapper around ``batch_job`` for callers outside an event loop."""
    return asyncio.run(
        batch_job(executor, records, reducer_options, batching_options, metrics=metrics)
    )


def run_concurrent_batch_job(
    executor: Executor,
    records: Sequence[T],
    reducer_options: ReducerLike[U],
    batching_options: BatchingLike,
    *,
    metrics: Optional[RunMetrics] = None,
) -> U:
    """Blocking wrapper around ``concurrent_batch_job``."""
    return asyncio.run(
        concurrent_batch_job(
            executor, records, reducer_options, batching_options, metrics=metrics
        )
    )
