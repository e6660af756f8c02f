"""Batch job library modules.

This package contains the chunker, the executor outcome types, the
sequential and concurrent runners, and their configuration, retry and
observability helpers.
"""

from batchjob.lib.chunking import (
    chunk_records,
    iter_transactions,
    transaction_bounds,
    transaction_count,
)
from batchjob.lib.config_loader import load_batching_options, parse_batching_options
from batchjob.lib.env import expand_config, expand_env_vars, load_env_file
from batchjob.lib.errors import BatchJobError, ConfigurationError, ExecutorFailure
from batchjob.lib.observability import RunMetrics, get_structlog_logger, setup_logging
from batchjob.lib.options import BatchingOptions, ProgressInfo, ReducerOptions
from batchjob.lib.outcome import (
    Failure,
    Outcome,
    Success,
    capture_failures,
    coerce_outcome,
    is_success,
)
from batchjob.lib.resilience import RetryConfig
from batchjob.lib.runner import (
    batch_job,
    concurrent_batch_job,
    run_batch_job,
    run_concurrent_batch_job,
)

__all__ = [
    # Chunking
    "chunk_records",
    "iter_transactions",
    "transaction_bounds",
    "transaction_count",
    # Configuration
    "BatchingOptions",
    "ProgressInfo",
    "ReducerOptions",
    "RetryConfig",
    "load_batching_options",
    "parse_batching_options",
    "expand_config",
    "expand_env_vars",
    "load_env_file",
    # Errors
    "BatchJobError",
    "ConfigurationError",
    "ExecutorFailure",
    # Outcomes
    "Failure",
    "Outcome",
    "Success",
    "capture_failures",
    "coerce_outcome",
    "is_success",
    # Runners
    "batch_job",
    "concurrent_batch_job",
    "run_batch_job",
    "run_concurrent_batch_job",
    # Observability
    "RunMetrics",
    "get_structlog_logger",
    "setup_logging",
]
