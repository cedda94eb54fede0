"""
Copying layout operations: `reshape` and axis reduction (`sum`).

Both produce fresh contiguous outputs. `reshape` first forces its operand
contiguous, so it accepts strided views (e.g. a transpose) as input.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

import numpy as np

from ...domain._array_shape import ArrayShape
from ...domain._errors import InvalidParameterError, ShapeMismatchError
from ...domain._operation import NO_GRADIENT, Operation
from .._registry import operation_registry
from ._view_ops import _single_operand


@operation_registry.register("reshape")
class ReshapeOp(Operation):
    """
    Reinterpret the operand's elements (row-major order) under new dims.

    Params
    ------
    The target dims, fully resolved (no ``-1``).
    """

    supports_complex = True

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        x = _single_operand(self.name, operand_shapes)
        target = tuple(params)
        if any(not isinstance(d, int) or isinstance(d, bool) or d < 0 for d in target):
            raise InvalidParameterError(
                self.name, f"target dims must be non-negative ints, got {target!r}"
            )
        out = ArrayShape.contiguous(target, target, self.name)
        if out.size != x.size:
            raise ShapeMismatchError(
                self.name,
                f"cannot reshape dims {x.dims} ({x.size} elements) to {target} "
                f"({out.size} elements)",
            )
        return out

    def forward(self, output, operands) -> None:
        (x,) = operands
        src = x.buffer.make_contiguous()
        dst = output.raw_buffer
        dst.real_flat()[:] = src.real_flat()
        if dst.is_complex:
            dst.imag_flat()[:] = src.imag_flat()

    def jvp(self, primals, tangents, output):
        from .._functional import reshape

        (t,) = tangents
        if t is NO_GRADIENT:
            return NO_GRADIENT
        return reshape(t, output.dims)

    def vjp(self, primals, grad_output, output):
        from .._functional import reshape

        return (reshape(grad_output, primals[0].dims),)


@operation_registry.register("sum")
class SumOp(Operation):
    """
    Sum over a set of axes.

    Params
    ------
    (axes, keepdims) : tuple[tuple[int, ...], bool]
        Sorted, non-negative, unique axes; whether reduced axes are kept with
        size 1.
    """

    supports_complex = True

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        x = _single_operand(self.name, operand_shapes)
        if len(params) != 2:
            raise InvalidParameterError(
                self.name, f"expected params (axes, keepdims), got {params!r}"
            )
        axes, keepdims = params
        axes = tuple(axes)
        if len(set(axes)) != len(axes) or any(
            not isinstance(a, int) or not 0 <= a < x.ndim for a in axes
        ):
            raise InvalidParameterError(
                self.name, f"invalid axes {axes!r} for rank {x.ndim}"
            )

        if keepdims:
            dims = tuple(1 if i in axes else d for i, d in enumerate(x.dims))
        else:
            dims = tuple(d for i, d in enumerate(x.dims) if i not in axes)
        return ArrayShape.contiguous(dims, (tuple(sorted(axes)), bool(keepdims)), self.name)

    def forward(self, output, operands) -> None:
        (x,) = operands
        axes, keepdims = output.shape.params
        src = x.buffer
        dst = output.raw_buffer
        dst.real_flat()[:] = np.sum(src.real_view(), axis=axes, keepdims=keepdims).reshape(-1)
        if dst.is_complex:
            dst.imag_flat()[:] = np.sum(
                src.imag_view(), axis=axes, keepdims=keepdims
            ).reshape(-1)

    def jvp(self, primals, tangents, output):
        from .._functional import sum_axes

        (t,) = tangents
        if t is NO_GRADIENT:
            return NO_GRADIENT
        axes, keepdims = output.shape.params
        return sum_axes(t, axes, keepdims)

    def vjp(self, primals, grad_output, output):
        from .._functional import broadcast_to, reshape

        x = primals[0]
        axes, keepdims = output.shape.params
        g = grad_output
        if not keepdims:
            g = reshape(g, tuple(1 if i in axes else d for i, d in enumerate(x.dims)))
        return (broadcast_to(g, x.dims),)


__all__ = [
    ReshapeOp.__name__,
    SumOp.__name__,
]
