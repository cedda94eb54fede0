"""
Layout operations: zero-copy strided views and copying reshape / reduction.
"""

from ._reduce_ops import ReshapeOp, SumOp
from ._view_ops import BroadcastToOp, TransposeOp

__all__ = [
    "BroadcastToOp",
    "TransposeOp",
    "ReshapeOp",
    "SumOp",
]
