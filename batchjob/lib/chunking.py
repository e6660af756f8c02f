"""Positional record chunking.

Splits an ordered record sequence into fixed-size transactions. Slicing is
purely positional: no filtering, no reordering. Every record lands in
exactly one transaction and only the last transaction may be shorter.

Key functions:
- transaction_count: Number of transactions for a record count
- transaction_bounds: Clipped [start, end) bounds of one transaction
- iter_transactions: Lazily yield transactions (sequential runner)
- chunk_records: Eagerly build all transactions (concurrent runner)
"""

from __future__ import annotations

import logging
import math
from typing import Iterator, List, Sequence, Tuple, TypeVar

from batchjob.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "validate_transaction_size",
    "transaction_count",
    "transaction_bounds",
    "iter_transactions",
    "chunk_records",
]

T = TypeVar("T")


def validate_transaction_size(transaction_size: object) -> int:
    """Return the transaction size or raise ConfigurationError.

    Booleans are rejected even though they are ints.
    """
    if isinstance(transaction_size, bool) or not isinstance(transaction_size, int):
        raise ConfigurationError(
            "transaction_size must be an integer",
            field="transaction_size",
            value=transaction_size,
        )
    if transaction_size <= 0:
        raise ConfigurationError(
            "transaction_size must be positive",
            field="transaction_size",
            value=transaction_size,
            suggestion="Use a transaction size of at least 1.",
        )
    return transaction_size


def transaction_count(total: int, transaction_size: int) -> int:
    """Number of transactions needed to cover ``total`` records."""
    size = validate_transaction_size(transaction_size)
    if total <= 0:
        return 0
    return math.ceil(total / size)


def transaction_bounds(step: int, transaction_size: int, total: int) -> Tuple[int, int]:
    """Return ``[start, end)`` for transaction ``step``, clipped to ``total``.

    A step past the end of the input yields an empty range.
    """
    start = min(step * transaction_size, total)
    end = min((step + 1) * transaction_size, total)
    return start, end


def iter_transactions(records: Sequence[T], transaction_size: int) -> Iterator[Sequence[T]]:
    """Lazily yield transactions of ``records`` in input order.

    Example:
        >>> list(iter_transactions([1, 2, 3, 4, 5], 2))
        [[1, 2], [3, 4], [5]]
    """
    size = validate_transaction_size(transaction_size)
    for start in range(0, len(records), size):
        yield records[start : start + size]


def chunk_records(records: Sequence[T], transaction_size: int) -> List[Sequence[T]]:
    """Split ``records`` into a list of transactions.

    Args:
        records: Ordered input sequence (list, tuple, range, ...)
        transaction_size: Maximum records per transaction (must be > 0)

    Returns:
        ``ceil(len(records) / transaction_size)`` slices; empty input
        gives an empty list.

    Raises:
        ConfigurationError: If transaction_size is not a positive integer.
    """
    chunks = list(iter_transactions(records, transaction_size))
    logger.debug(
        "Chunked %d records into %d transactions (transaction_size=%d)",
        len(records),
        len(chunks),
        transaction_size,
    )
    return chunks
