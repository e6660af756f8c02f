"""CLI entry point for running the built-in sum workload.

Useful for checking transaction sizing and comparing the two runners.

Usage:
    python -m batchjob --records 2000000 --transaction-size 50000
    python -m batchjob --records 2000000 --transaction-size 50000 --mode concurrent
    python -m batchjob --records 1000 --config ./batching.yaml --fail-on 3
    python -m batchjob --records 1000 --transaction-size 100 --json-logs

The executor sums each transaction and the reducer adds the sums, so a
clean run over N records prints N*(N-1)/2.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Callable, List, Optional, Sequence

from batchjob.lib.config_loader import load_batching_options
from batchjob.lib.env import env_int
from batchjob.lib.errors import ConfigurationError
from batchjob.lib.observability import RunMetrics, setup_logging
from batchjob.lib.options import BatchingOptions, ProgressInfo, ReducerOptions
from batchjob.lib.outcome import Failure, Outcome, Success
from batchjob.lib.resilience import RetryConfig
from batchjob.lib.runner import batch_job, concurrent_batch_job

logger = logging.getLogger(__name__)

DEFAULT_TRANSACTION_SIZE = 50_000


def build_sum_executor(
    delay: float = 0.0,
    fail_on: Optional[int] = None,
) -> Callable[[Sequence[int]], Any]:
    """Executor summing a transaction; the transaction starting at record ``fail_on`` always fails."""

    async def executor(records: Sequence[int]) -> Outcome[int]:
        if delay:
            await asyncio.sleep(delay)
        if fail_on is not None and records and records[0] == fail_on:
            return Failure(f"transaction starting at record {fail_on} rejected")
        return Success(sum(records))

    return executor


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="batchjob",
        description="Run the sum workload through the batch job runners",
    )
    parser.add_argument("--records", type=int, default=2_000_000, help="Number of records")
    parser.add_argument(
        "--transaction-size",
        type=int,
        default=None,
        help=(
            "Records per transaction (default: $BATCHJOB_TRANSACTION_SIZE "
            f"or {DEFAULT_TRANSACTION_SIZE})"
        ),
    )
    parser.add_argument(
        "--mode",
        choices=("sequential", "concurrent"),
        default="sequential",
        help="Execution discipline",
    )
    parser.add_argument("--config", help="YAML file with batching options")
    parser.add_argument("--retry", action="store_true", help="Retry failed transactions")
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Give up on a transaction after this many attempts (with --retry)",
    )
    parser.add_argument(
        "--max-concurrency", type=int, default=None, help="Cap in-flight transactions"
    )
    parser.add_argument(
        "--fail-on",
        type=int,
        default=None,
        metavar="STEP",
        help="Make transaction STEP fail (0-based)",
    )
    parser.add_argument(
        "--delay", type=float, default=0.0, help="Simulated executor latency in seconds"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="JSON log output")
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> BatchingOptions:
    def on_error(error: Any) -> None:
        logger.warning("Transaction failed: %s", error)

    def on_success(value: Any, progress: Optional[ProgressInfo]) -> None:
        if progress is not None:
            logger.debug("Transaction %d folded (remaining=%s)", progress.step, progress.remaining)

    if args.config:
        options = load_batching_options(
            args.config, on_batch_success=on_success, on_batch_error=on_error
        )
    else:
        size = args.transaction_size
        if size is None:
            size = env_int("BATCHJOB_TRANSACTION_SIZE", DEFAULT_TRANSACTION_SIZE)
        options = BatchingOptions(
            transaction_size=size,
            on_batch_success=on_success,
            on_batch_error=on_error,
            retry=args.retry,
            retry_config=RetryConfig(max_attempts=args.max_attempts) if args.max_attempts else None,
            max_concurrency=args.max_concurrency,
        )
    return options.validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, json_format=args.json_logs)

    try:
        options = build_options(args)
    except (ConfigurationError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    fail_on = None
    if args.fail_on is not None:
        fail_on = args.fail_on * options.transaction_size

    executor = build_sum_executor(delay=args.delay, fail_on=fail_on)
    reducer = ReducerOptions(reducer=lambda value, acc: value + acc, accumulator=0)
    records = range(args.records)
    metrics = RunMetrics(job="sum", mode=args.mode)

    runner = concurrent_batch_job if args.mode == "concurrent" else batch_job
    result = asyncio.run(runner(executor, records, reducer, options, metrics=metrics))

    elapsed = metrics.total_duration
    throughput = metrics.count("records_processed") / elapsed if elapsed > 0 else 0.0
    metrics.record("throughput", round(throughput, 1), unit="records_per_second")
    logger.info("Run metrics: %s", metrics.to_log_dict())

    print(f"Result: {result}")
    print(json.dumps(metrics.summary(), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
