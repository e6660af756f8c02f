"""Chunked execution of async executors over large record sets.

Split records into fixed-size transactions, run an executor on each one
sequentially or concurrently, and fold successful results into a single
accumulator.

Usage:
    python -m batchjob --records 2000000 --transaction-size 50000
    python -m batchjob --records 2000000 --transaction-size 50000 --mode concurrent
"""

from batchjob.lib.errors import ConfigurationError
from batchjob.lib.options import BatchingOptions, ProgressInfo, ReducerOptions
from batchjob.lib.outcome import Failure, Success, capture_failures
from batchjob.lib.resilience import RetryConfig
from batchjob.lib.runner import batch_job, concurrent_batch_job

__version__ = "1.0.0"

__all__ = [
    "batch_job",
    "concurrent_batch_job",
    "BatchingOptions",
    "ReducerOptions",
    "ProgressInfo",
    "RetryConfig",
    "Success",
    "Failure",
    "capture_failures",
    "ConfigurationError",
]
