"""
Storage primitives consumed by kernels: strided buffers, lane batching and
parallel-for.
"""

from ._buffer import Buffer
from ._lanes import lane_batches, run_binary_lanes, run_unary_lanes
from ._parallel import parallel_for, partition_range

__all__ = [
    Buffer.__name__,
    lane_batches.__name__,
    run_unary_lanes.__name__,
    run_binary_lanes.__name__,
    parallel_for.__name__,
    partition_range.__name__,
]
