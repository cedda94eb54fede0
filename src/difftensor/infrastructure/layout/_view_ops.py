"""
Strided view operations.

`broadcast_to` and `transpose` never copy: their forward binds a view of the
operand's storage, with a stride vector computed by shape inference.

- `broadcast_to` uses a stride of 0 along every broadcast axis.
- `transpose` permutes the operand's strides.

View buffers are read-only; no operation writes through them.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

from ...domain._array_shape import ArrayShape
from ...domain._errors import InvalidParameterError, ShapeMismatchError
from ...domain._operation import NO_GRADIENT, Operation
from .._registry import operation_registry


def _single_operand(name: str, operand_shapes: Sequence[ArrayShape]) -> ArrayShape:
    if len(operand_shapes) != 1:
        raise ShapeMismatchError(name, f"expected 1 operand, got {len(operand_shapes)}")
    return operand_shapes[0]


class _ViewOperation(Operation):
    supports_complex = True
    allocates_output = False

    def forward(self, output, operands) -> None:
        (x,) = operands
        output._bind_buffer(x.buffer.view(output.dims, output.shape.strides))


@operation_registry.register("broadcast_to")
class BroadcastToOp(_ViewOperation):
    """
    Broadcast an operand to larger dims (NumPy rules, right-aligned).

    Params
    ------
    The target dims, as a tuple of ints.
    """

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        x = _single_operand(self.name, operand_shapes)
        target = tuple(params)
        if any(not isinstance(d, int) or isinstance(d, bool) or d < 0 for d in target):
            raise InvalidParameterError(
                self.name, f"target dims must be non-negative ints, got {target!r}"
            )
        if len(target) < x.ndim:
            raise ShapeMismatchError(
                self.name, f"cannot broadcast rank {x.ndim} to lower rank {len(target)}"
            )

        pad = len(target) - x.ndim
        strides = [0] * pad
        for axis, (d, s) in enumerate(zip(x.dims, x.strides)):
            t = target[pad + axis]
            if d == t:
                strides.append(s)
            elif d == 1:
                strides.append(0)
            else:
                raise ShapeMismatchError(
                    self.name,
                    f"dims {x.dims} cannot broadcast to {target}: "
                    f"axis {axis} has size {d}, target {t}",
                )
        return ArrayShape(target, tuple(strides), target, self.name)

    def jvp(self, primals, tangents, output):
        from .._functional import broadcast_to

        (t,) = tangents
        if t is NO_GRADIENT:
            return NO_GRADIENT
        return broadcast_to(t, output.dims)

    def vjp(self, primals, grad_output, output):
        from .._functional import sum_to_shape

        return (sum_to_shape(grad_output, primals[0].dims),)


@operation_registry.register("transpose")
class TransposeOp(_ViewOperation):
    """
    Permute axes by permuting strides.

    Params
    ------
    The permutation, as a tuple of axis indices (output axis i reads operand
    axis ``perm[i]``).
    """

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        x = _single_operand(self.name, operand_shapes)
        perm = tuple(params)
        if sorted(perm) != list(range(x.ndim)):
            raise InvalidParameterError(
                self.name, f"{perm!r} is not a permutation of the {x.ndim} axes"
            )
        return ArrayShape(
            tuple(x.dims[p] for p in perm),
            tuple(x.strides[p] for p in perm),
            perm,
            self.name,
        )

    def jvp(self, primals, tangents, output):
        from .._functional import transpose

        (t,) = tangents
        if t is NO_GRADIENT:
            return NO_GRADIENT
        return transpose(t, output.shape.params)

    def vjp(self, primals, grad_output, output):
        from .._functional import transpose

        perm = output.shape.params
        inverse = [0] * len(perm)
        for i, p in enumerate(perm):
            inverse[p] = i
        return (transpose(grad_output, tuple(inverse)),)


__all__ = [
    BroadcastToOp.__name__,
    TransposeOp.__name__,
]
