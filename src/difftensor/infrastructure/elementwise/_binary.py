"""
Binary elementwise arithmetic with broadcasting.

All four operations implement complex operands. Partial derivatives:

    add : da -> t,        db -> t
    sub : da -> t,        db -> -t
    mul : da -> t * b,    db -> t * a
    div : da -> t / b,    db -> -(t * out) / b
"""

from __future__ import annotations

from .._registry import operation_registry
from ..ops.elementwise_cpu import add_lanes, div_lanes, mul_lanes, sub_lanes
from ._base import BinaryElementwiseOperation


@operation_registry.register("add")
class AddOp(BinaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(add_lanes)

    def linearized(self, primals, index, t, output):
        return t


@operation_registry.register("sub")
class SubOp(BinaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(sub_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import neg

        return t if index == 0 else neg(t)


@operation_registry.register("mul")
class MulOp(BinaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(mul_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import mul

        return mul(t, primals[1 - index])


@operation_registry.register("div")
class DivOp(BinaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(div_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import div, mul, neg

        b = primals[1]
        if index == 0:
            return div(t, b)
        return neg(div(mul(t, output), b))


__all__ = [
    AddOp.__name__,
    SubOp.__name__,
    MulOp.__name__,
    DivOp.__name__,
]
