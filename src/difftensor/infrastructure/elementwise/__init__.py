"""
Elementwise operations: lane-kernel based unary and broadcasting binary ops.
"""

from ._base import (
    BinaryElementwiseOperation,
    UnaryElementwiseOperation,
    floating_point_guard,
)
from ._binary import AddOp, DivOp, MulOp, SubOp
from ._unary import (
    AbsOp,
    AtanOp,
    ConjOp,
    CosOp,
    ExpOp,
    LogOp,
    NegOp,
    PowScalarOp,
    RealOp,
    SignOp,
    SinOp,
    SqrtOp,
    TanhOp,
)

__all__ = [
    "BinaryElementwiseOperation",
    "UnaryElementwiseOperation",
    "floating_point_guard",
    "AddOp",
    "SubOp",
    "MulOp",
    "DivOp",
    "AbsOp",
    "AtanOp",
    "ConjOp",
    "CosOp",
    "ExpOp",
    "LogOp",
    "NegOp",
    "PowScalarOp",
    "RealOp",
    "SignOp",
    "SinOp",
    "SqrtOp",
    "TanhOp",
]
