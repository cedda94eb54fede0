"""
Backend-free contracts of the operation framework: geometry, node states,
the operation protocol and the error taxonomy.
"""

from ._array import IArray
from ._array_shape import ArrayShape, contiguous_strides
from ._errors import (
    DiffTensorError,
    ExecutionError,
    InvalidParameterError,
    PoisonedNodeError,
    ShapeMismatchError,
    UnsupportedOperandKindError,
)
from ._node_state import NodeState
from ._operation import (
    NO_GRADIENT,
    NoGradient,
    Operation,
    default_jvp,
    default_vjp,
)

__all__ = [
    "IArray",
    "ArrayShape",
    "contiguous_strides",
    "DiffTensorError",
    "ExecutionError",
    "InvalidParameterError",
    "PoisonedNodeError",
    "ShapeMismatchError",
    "UnsupportedOperandKindError",
    "NodeState",
    "NO_GRADIENT",
    "NoGradient",
    "Operation",
    "default_jvp",
    "default_vjp",
]
