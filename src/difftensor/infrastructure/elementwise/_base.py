"""
Base classes for elementwise operations.

Elementwise operations share one forward-execution strategy:

1. force each operand into a contiguous row-major layout (binary operands are
   additionally broadcast to the output dims),
2. run the operation's `vectorized_kernel` over fixed-width lanes of the flat
   real / imaginary planes,
3. write each lane into the matching slice of the freshly allocated output.

They also share their derivative structure: the derivative of an elementwise
op is multiplication by a per-element factor, so one rule (`linearized`)
serves both JVP (applied to a tangent) and VJP (applied to a cotangent).
Complex derivatives follow the non-conjugating convention, under which
transposing "multiply by f'(x)" is again "multiply by f'(x)".
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence, Tuple

import numpy as np

from ...domain._array_shape import ArrayShape
from ...domain._errors import (
    ExecutionError,
    InvalidParameterError,
    ShapeMismatchError,
)
from ...domain._operation import NO_GRADIENT, MaybeArray, Operation
from .._config import get_config
from ..storage._buffer import Buffer
from ..storage._lanes import run_binary_lanes, run_unary_lanes


@contextmanager
def floating_point_guard(op_name: str) -> Iterator[None]:
    """
    Apply the configured floating-point error policy around a kernel.

    Under ``floating_point_errors="raise"``, overflow, invalid operations and
    division by zero raise `ExecutionError` (chained to NumPy's
    `FloatingPointError`). Under "ignore" they produce inf / nan silently.
    """
    mode = get_config().floating_point_errors
    try:
        with np.errstate(all=mode):
            yield
    except FloatingPointError as exc:
        raise ExecutionError(op_name, f"floating-point fault: {exc}") from exc


def _flat_planes(
    buf: Buffer, dims: Tuple[int, ...]
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Row-major flat planes of `buf` broadcast to `dims`."""
    if buf.dims == dims:
        buf = buf.make_contiguous()
        return buf.real_flat(), buf.imag_flat()

    def spread(view: np.ndarray) -> np.ndarray:
        return np.ascontiguousarray(np.broadcast_to(view, dims)).reshape(-1)

    im = buf.imag_view()
    return spread(buf.real_view()), None if im is None else spread(im)


class _ElementwiseOperation(Operation):
    arity: int = 1

    def validate_params(self, params: Tuple[Any, ...]) -> Tuple[Any, ...]:
        """
        Validate and normalize scalar parameters.

        Elementwise operations take none by default.
        """
        if params:
            raise InvalidParameterError(
                self.name, f"takes no parameters, got {params!r}"
            )
        return params

    def _check_arity(self, operand_shapes: Sequence[ArrayShape]) -> None:
        if len(operand_shapes) != self.arity:
            raise ShapeMismatchError(
                self.name,
                f"expected {self.arity} operand(s), got {len(operand_shapes)}",
            )

    def lane_kernel(self, output):
        """
        Return the lane kernel used to compute `output`.

        Defaults to `vectorized_kernel`; operations with scalar parameters
        bind them here.
        """
        return self.vectorized_kernel

    def linearized(self, primals: Sequence[Any], index: int, t: Any, output: Any) -> MaybeArray:
        """
        Multiply `t` by the partial derivative of the output with respect to
        operand `index`.

        The default reports `NO_GRADIENT`, for ops that are piecewise constant.
        """
        return NO_GRADIENT


class UnaryElementwiseOperation(_ElementwiseOperation):
    """
    Base class for one-operand elementwise operations.

    Subclasses provide `vectorized_kernel(re, im) -> (re_out, im_out)` and,
    when differentiable, `linearized`.
    """

    arity = 1

    @staticmethod
    @abstractmethod
    def vectorized_kernel(re, im):
        """Lane kernel: map input lanes to output lanes."""
        ...

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        self._check_arity(operand_shapes)
        params = self.validate_params(params)
        return ArrayShape.contiguous(operand_shapes[0].dims, params, self.name)

    def forward(self, output, operands) -> None:
        (x,) = operands
        src = x.buffer.make_contiguous()
        dst = output.raw_buffer
        with floating_point_guard(self.name):
            run_unary_lanes(
                self.lane_kernel(output),
                src.real_flat(),
                src.imag_flat(),
                dst.real_flat(),
                dst.imag_flat(),
                get_config().lane_width,
            )

    def jvp(self, primals, tangents, output) -> MaybeArray:
        (t,) = tangents
        if t is NO_GRADIENT:
            return NO_GRADIENT
        return self.linearized(primals, 0, t, output)

    def vjp(self, primals, grad_output, output) -> Tuple[MaybeArray, ...]:
        return (self.linearized(primals, 0, grad_output, output),)


class BinaryElementwiseOperation(_ElementwiseOperation):
    """
    Base class for two-operand elementwise operations with NumPy-style
    broadcasting.

    The output dims are the broadcast of both operand dims. Gradients flowing
    back to a broadcast operand are reduced with `sum_to_shape`.
    """

    arity = 2

    @staticmethod
    @abstractmethod
    def vectorized_kernel(a_re, a_im, b_re, b_im):
        """Lane kernel: map two input lanes to one output lane."""
        ...

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        self._check_arity(operand_shapes)
        params = self.validate_params(params)
        a, b = operand_shapes
        try:
            dims = np.broadcast_shapes(a.dims, b.dims)
        except ValueError:
            raise ShapeMismatchError(
                self.name, f"operands with dims {a.dims} and {b.dims} do not broadcast"
            ) from None
        return ArrayShape.contiguous(dims, params, self.name)

    def forward(self, output, operands) -> None:
        a, b = operands
        dims = output.dims
        a_re, a_im = _flat_planes(a.buffer, dims)
        b_re, b_im = _flat_planes(b.buffer, dims)
        dst = output.raw_buffer
        with floating_point_guard(self.name):
            run_binary_lanes(
                self.lane_kernel(output),
                a_re,
                a_im,
                b_re,
                b_im,
                dst.real_flat(),
                dst.imag_flat(),
                get_config().lane_width,
            )

    def jvp(self, primals, tangents, output) -> MaybeArray:
        from .._functional import add, broadcast_to

        terms = [
            self.linearized(primals, i, t, output)
            for i, t in enumerate(tangents)
            if t is not NO_GRADIENT
        ]
        terms = [term for term in terms if term is not NO_GRADIENT]
        if not terms:
            return NO_GRADIENT
        out = terms[0] if len(terms) == 1 else add(terms[0], terms[1])
        if out.dims != output.dims:
            out = broadcast_to(out, output.dims)
        return out

    def vjp(self, primals, grad_output, output) -> Tuple[MaybeArray, ...]:
        from .._functional import sum_to_shape

        grads = []
        for i, x in enumerate(primals):
            g = self.linearized(primals, i, grad_output, output)
            grads.append(g if g is NO_GRADIENT else sum_to_shape(g, x.dims))
        return tuple(grads)
