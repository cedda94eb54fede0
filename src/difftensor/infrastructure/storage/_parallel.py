"""
Parallel-for over independent iteration ranges.

Structured kernels partition an outer dimension (e.g. batch) into contiguous
chunks and hand each chunk to `parallel_for`. Each chunk must write disjoint
output addresses and only read already-materialized operand buffers.

With a single worker (the default), chunks run serially on the calling
thread. Otherwise chunks are dispatched with `joblib.Parallel` on its
threading backend.
Exceptions raised by any chunk propagate to the caller with their original
type.
"""

import logging
from typing import Callable, List, Tuple

from joblib import Parallel, delayed

logger = logging.getLogger(__name__)


def partition_range(n: int, parts: int) -> List[Tuple[int, int]]:
    """
    Split ``range(n)`` into at most `parts` contiguous, non-empty chunks.

    Examples
    --------
    >>> partition_range(5, 2)
    [(0, 3), (3, 5)]
    >>> partition_range(0, 4)
    []
    """
    if parts < 1:
        raise ValueError(f"parts must be >= 1, got {parts}")
    parts = min(parts, n)
    chunks: List[Tuple[int, int]] = []
    start = 0
    for i in range(parts):
        stop = start + n // parts + (1 if i < n % parts else 0)
        chunks.append((start, stop))
        start = stop
    return chunks


def parallel_for(n: int, body: Callable[[int, int], None], *, num_workers: int = 1) -> None:
    """
    Run ``body(start, stop)`` over a partition of ``range(n)``.

    Parameters
    ----------
    n : int
        Size of the iteration space.
    body : Callable[[int, int], None]
        Callback processing the half-open range ``[start, stop)``.
    num_workers : int, optional
        Number of threads. Defaults to 1 (serial).
    """
    chunks = partition_range(n, num_workers)
    if len(chunks) <= 1:
        for start, stop in chunks:
            body(start, stop)
        return

    logger.debug("parallel_for: n=%d split into %d chunks", n, len(chunks))
    Parallel(n_jobs=len(chunks), prefer="threads")(
        delayed(body)(start, stop) for start, stop in chunks
    )
