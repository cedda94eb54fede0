"""
Grouped 1-D convolution operations (CPU backend).

This module defines three operations that together are closed under
differentiation:

- `Conv1dOp` ("conv1d"): ``y = conv(x, w) + b``
- `Conv1dInputGradOp` ("conv1d_input_grad"): the adjoint of ``x -> conv(x, w)``
- `Conv1dWeightGradOp` ("conv1d_weight_grad"): the adjoint of ``w -> conv(x, w)``

All three are bilinear in their two array operands, so each one's JVP and VJP
are expressed with the other two (plus `sum` / `broadcast_to` for the bias).
Higher-order derivatives therefore stay inside this family.

Responsibilities and boundaries
-------------------------------
- These classes contain no NumPy code. Storage access and parallel
  partitioning are delegated to `conv1d_cpu_ext`.
- Shape inference performs all validation: ranks, channel / group
  consistency, bias length and output length. Nothing is allocated if it
  fails.
- Complex operands are not implemented; the harness rejects them before a
  node is created.

Layout
------
- input  : (N, C_in, L)
- weight : (C_out, C_in / groups, K)
- bias   : (C_out,)
- output : (N, C_out, L_out)

Params
------
``(stride, padding, dilation, groups)`` for "conv1d", followed by
``input_length`` for "conv1d_input_grad" and ``kernel_length`` for
"conv1d_weight_grad".
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from ...domain._array_shape import ArrayShape
from ...domain._errors import InvalidParameterError, ShapeMismatchError
from ...domain._operation import NO_GRADIENT, Operation
from .._config import get_config
from .._registry import operation_registry
from ..ops.conv1d_cpu import Conv1dGeometry, conv1d_output_length
from ..ops.conv1d_cpu_ext import (
    conv1d_forward_cpu,
    conv1d_input_grad_cpu,
    conv1d_weight_grad_cpu,
)


def _check_int(op: str, label: str, value: Any, lowest: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < lowest:
        raise InvalidParameterError(op, f"{label} must be an int >= {lowest}, got {value!r}")
    return value


def _check_rank3(op: str, label: str, shape: ArrayShape) -> None:
    if shape.ndim != 3:
        raise ShapeMismatchError(op, f"{label} must have rank 3, got dims {shape.dims}")


def _accumulate(terms: List[Any]) -> Any:
    from .._functional import add

    if not terms:
        return NO_GRADIENT
    out = terms[0]
    for term in terms[1:]:
        out = add(out, term)
    return out


class _Conv1dFamily(Operation):
    """Shared parameter handling for the Conv1D operation family."""

    extra_param: str = ""

    def _params(self, params: Tuple[Any, ...]) -> Tuple[int, ...]:
        expected = 5 if self.extra_param else 4
        if len(params) != expected:
            names = "stride, padding, dilation, groups"
            if self.extra_param:
                names += f", {self.extra_param}"
            raise InvalidParameterError(
                self.name, f"expected params ({names}), got {params!r}"
            )
        stride, padding, dilation, groups = params[:4]
        out = [
            _check_int(self.name, "stride", stride, 1),
            _check_int(self.name, "padding", padding, 0),
            _check_int(self.name, "dilation", dilation, 1),
            _check_int(self.name, "groups", groups, 1),
        ]
        if self.extra_param:
            out.append(_check_int(self.name, self.extra_param, params[4], 1))
        return tuple(out)

    def _check_groups(self, label: str, channels: int, groups: int) -> None:
        if channels % groups != 0:
            raise ShapeMismatchError(
                self.name, f"{label} ({channels}) must be divisible by groups ({groups})"
            )

    def _out_length(self, length: int, kernel_length: int, params: Tuple[int, ...]) -> int:
        stride, padding, dilation, _ = params[:4]
        if kernel_length < 1:
            raise ShapeMismatchError(self.name, "kernel length must be >= 1")
        out_len = conv1d_output_length(length, kernel_length, stride, padding, dilation)
        if out_len < 1:
            raise ShapeMismatchError(
                self.name,
                f"output length would be {out_len}: input length {length} is too short "
                f"for kernel length {kernel_length} (dilation {dilation}, padding {padding})",
            )
        return out_len

    @staticmethod
    def conv_kwargs(output) -> Dict[str, int]:
        stride, padding, dilation, groups = output.shape.params[:4]
        return dict(stride=stride, padding=padding, dilation=dilation, groups=groups)

    @staticmethod
    def geometry(
        x_dims: Sequence[int],
        w_dims: Sequence[int],
        out_length: int,
        params: Tuple[int, ...],
    ) -> Conv1dGeometry:
        n, c_in, length = x_dims
        c_out, _, k = w_dims
        stride, padding, dilation, groups = params[:4]
        return Conv1dGeometry(
            batch=n,
            in_channels=c_in,
            length=length,
            out_channels=c_out,
            kernel_length=k,
            out_length=out_length,
            stride=stride,
            padding=padding,
            dilation=dilation,
            groups=groups,
        )


@operation_registry.register("conv1d")
class Conv1dOp(_Conv1dFamily):
    """
    Grouped 1-D convolution with optional bias.

    Operands are ``(x, w)`` or ``(x, w, b)``. Input channel ``ci`` belongs to
    group ``ci // (C_in / groups)``; output channel ``co`` belongs to group
    ``co // (C_out / groups)`` and only reads input channels of its own group.
    """

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        if len(operand_shapes) not in (2, 3):
            raise ShapeMismatchError(
                self.name,
                f"expected operands (x, w) or (x, w, b), got {len(operand_shapes)}",
            )
        params = self._params(params)
        groups = params[3]
        x, w = operand_shapes[0], operand_shapes[1]
        _check_rank3(self.name, "input", x)
        _check_rank3(self.name, "weight", w)

        n, c_in, length = x.dims
        c_out, c_in_g, k = w.dims
        self._check_groups("out channels", c_out, groups)
        if c_in_g * groups != c_in:
            raise ShapeMismatchError(
                self.name,
                f"input has {c_in} channels but weight expects "
                f"{c_in_g} per group x {groups} groups",
            )
        if len(operand_shapes) == 3:
            b = operand_shapes[2]
            if b.dims != (c_out,):
                raise ShapeMismatchError(
                    self.name, f"bias must have dims ({c_out},), got {b.dims}"
                )

        out_len = self._out_length(length, k, params)
        return ArrayShape.contiguous((n, c_out, out_len), params, self.name)

    def forward(self, output, operands) -> None:
        x, w = operands[0], operands[1]
        b = operands[2].buffer if len(operands) == 3 else None
        geom = self.geometry(x.dims, w.dims, output.dims[2], output.shape.params)
        conv1d_forward_cpu(
            geom,
            x.buffer,
            w.buffer,
            b,
            output.raw_buffer,
            num_workers=get_config().num_workers,
        )

    def jvp(self, primals, tangents, output):
        from .._functional import broadcast_to, conv1d, reshape

        x, w = primals[0], primals[1]
        kw = self.conv_kwargs(output)
        terms = []
        if tangents[0] is not NO_GRADIENT:
            terms.append(conv1d(tangents[0], w, **kw))
        if tangents[1] is not NO_GRADIENT:
            terms.append(conv1d(x, tangents[1], **kw))
        if len(primals) == 3 and tangents[2] is not NO_GRADIENT:
            tb = reshape(tangents[2], (1, output.dims[1], 1))
            terms.append(broadcast_to(tb, output.dims))
        return _accumulate(terms)

    def vjp(self, primals, grad_output, output):
        from .._functional import conv1d_input_grad, conv1d_weight_grad, sum_axes

        x, w = primals[0], primals[1]
        kw = self.conv_kwargs(output)
        grads = (
            conv1d_input_grad(grad_output, w, x.dims[2], **kw),
            conv1d_weight_grad(grad_output, x, w.dims[2], **kw),
        )
        if len(primals) == 3:
            grads += (sum_axes(grad_output, (0, 2), False),)
        return grads


@operation_registry.register("conv1d_input_grad")
class Conv1dInputGradOp(_Conv1dFamily):
    """
    Input gradient of Conv1D: operands ``(grad_y, w)``, output ``(N, C_in, L)``.

    Padded positions receive no gradient. `input_length` is a parameter
    because a strided convolution maps several input lengths to the same
    output length.
    """

    extra_param = "input_length"

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        if len(operand_shapes) != 2:
            raise ShapeMismatchError(
                self.name, f"expected operands (grad_y, w), got {len(operand_shapes)}"
            )
        params = self._params(params)
        groups, length = params[3], params[4]
        gy, w = operand_shapes
        _check_rank3(self.name, "grad_y", gy)
        _check_rank3(self.name, "weight", w)

        n, c_out, out_len = gy.dims
        if w.dims[0] != c_out:
            raise ShapeMismatchError(
                self.name,
                f"grad_y has {c_out} channels but weight has {w.dims[0]} out channels",
            )
        self._check_groups("out channels", c_out, groups)
        expected = self._out_length(length, w.dims[2], params)
        if expected != out_len:
            raise ShapeMismatchError(
                self.name,
                f"grad_y length {out_len} does not match output length {expected} "
                f"of an input of length {length}",
            )
        return ArrayShape.contiguous((n, w.dims[1] * groups, length), params, self.name)

    def forward(self, output, operands) -> None:
        gy, w = operands
        geom = self.geometry(output.dims, w.dims, gy.dims[2], output.shape.params)
        conv1d_input_grad_cpu(
            geom,
            gy.buffer,
            w.buffer,
            output.raw_buffer,
            num_workers=get_config().num_workers,
        )

    def jvp(self, primals, tangents, output):
        from .._functional import conv1d_input_grad

        gy, w = primals
        kw = self.conv_kwargs(output)
        length = output.dims[2]
        terms = []
        if tangents[0] is not NO_GRADIENT:
            terms.append(conv1d_input_grad(tangents[0], w, length, **kw))
        if tangents[1] is not NO_GRADIENT:
            terms.append(conv1d_input_grad(gy, tangents[1], length, **kw))
        return _accumulate(terms)

    def vjp(self, primals, grad_output, output):
        from .._functional import conv1d, conv1d_weight_grad

        gy, w = primals
        kw = self.conv_kwargs(output)
        return (
            conv1d(grad_output, w, **kw),
            conv1d_weight_grad(gy, grad_output, w.dims[2], **kw),
        )


@operation_registry.register("conv1d_weight_grad")
class Conv1dWeightGradOp(_Conv1dFamily):
    """
    Weight gradient of Conv1D: operands ``(grad_y, x)``, output
    ``(C_out, C_in / groups, K)``.
    """

    extra_param = "kernel_length"

    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        if len(operand_shapes) != 2:
            raise ShapeMismatchError(
                self.name, f"expected operands (grad_y, x), got {len(operand_shapes)}"
            )
        params = self._params(params)
        groups, k = params[3], params[4]
        gy, x = operand_shapes
        _check_rank3(self.name, "grad_y", gy)
        _check_rank3(self.name, "input", x)

        n, c_out, out_len = gy.dims
        if x.dims[0] != n:
            raise ShapeMismatchError(
                self.name, f"grad_y batch {n} does not match input batch {x.dims[0]}"
            )
        self._check_groups("out channels", c_out, groups)
        self._check_groups("in channels", x.dims[1], groups)
        expected = self._out_length(x.dims[2], k, params)
        if expected != out_len:
            raise ShapeMismatchError(
                self.name,
                f"grad_y length {out_len} does not match output length {expected} "
                f"of the input",
            )
        return ArrayShape.contiguous((c_out, x.dims[1] // groups, k), params, self.name)

    def forward(self, output, operands) -> None:
        gy, x = operands
        geom = self.geometry(x.dims, output.dims, gy.dims[2], output.shape.params)
        conv1d_weight_grad_cpu(
            geom,
            gy.buffer,
            x.buffer,
            output.raw_buffer,
            num_workers=get_config().num_workers,
        )

    def jvp(self, primals, tangents, output):
        from .._functional import conv1d_weight_grad

        gy, x = primals
        kw = self.conv_kwargs(output)
        k = output.dims[2]
        terms = []
        if tangents[0] is not NO_GRADIENT:
            terms.append(conv1d_weight_grad(tangents[0], x, k, **kw))
        if tangents[1] is not NO_GRADIENT:
            terms.append(conv1d_weight_grad(gy, tangents[1], k, **kw))
        return _accumulate(terms)

    def vjp(self, primals, grad_output, output):
        from .._functional import conv1d, conv1d_input_grad

        gy, x = primals
        kw = self.conv_kwargs(output)
        return (
            conv1d(x, grad_output, **kw),
            conv1d_input_grad(gy, grad_output, x.dims[2], **kw),
        )


__all__ = [
    Conv1dOp.__name__,
    Conv1dInputGradOp.__name__,
    Conv1dWeightGradOp.__name__,
]
