"""
Functional API over the registered operations.

Each wrapper normalizes its arguments into operands and hashable scalar
params and calls `apply` with a descriptor resolved from the operation
registry. Descriptors are resolved once, when this module is imported.

Derivative rules import their building blocks from here, so every rule's
result is itself a graph node that can be differentiated again.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple, Union

from ..domain._errors import InvalidParameterError, ShapeMismatchError
from ._array import Array, Number
from ._harness import apply
from ._registry import operation_registry

# Importing the operation modules registers their descriptors.
from . import convolution as _convolution  # noqa: F401
from . import elementwise as _elementwise  # noqa: F401
from . import layout as _layout  # noqa: F401

ArrayLike = Union[Array, Number]

_NEG = operation_registry.resolve("neg")
_CONJ = operation_registry.resolve("conj")
_REAL = operation_registry.resolve("real")
_EXP = operation_registry.resolve("exp")
_LOG = operation_registry.resolve("log")
_SIN = operation_registry.resolve("sin")
_COS = operation_registry.resolve("cos")
_TANH = operation_registry.resolve("tanh")
_ATAN = operation_registry.resolve("atan")
_SQRT = operation_registry.resolve("sqrt")
_ABS = operation_registry.resolve("abs")
_SIGN = operation_registry.resolve("sign")
_POW_SCALAR = operation_registry.resolve("pow_scalar")
_ADD = operation_registry.resolve("add")
_SUB = operation_registry.resolve("sub")
_MUL = operation_registry.resolve("mul")
_DIV = operation_registry.resolve("div")
_BROADCAST_TO = operation_registry.resolve("broadcast_to")
_TRANSPOSE = operation_registry.resolve("transpose")
_RESHAPE = operation_registry.resolve("reshape")
_SUM = operation_registry.resolve("sum")
_CONV1D = operation_registry.resolve("conv1d")
_CONV1D_INPUT_GRAD = operation_registry.resolve("conv1d_input_grad")
_CONV1D_WEIGHT_GRAD = operation_registry.resolve("conv1d_weight_grad")


def _pair_operands(a: ArrayLike, b: ArrayLike) -> Tuple[Array, Array]:
    if isinstance(a, Array):
        return a, Array._as_array(b, a)
    if isinstance(b, Array):
        return Array._as_array(a, b), b
    raise TypeError(
        f"at least one operand must be an Array, got {type(a)!r} and {type(b)!r}"
    )


# ---------------------------------------------------------------------------
# Unary elementwise
# ---------------------------------------------------------------------------
def neg(x: Array) -> Array:
    return apply(_NEG, (x,))


def conj(x: Array) -> Array:
    return apply(_CONJ, (x,))


def real(x: Array) -> Array:
    """Real part of `x`; the result is always real-valued."""
    return apply(_REAL, (x,))


def exp(x: Array) -> Array:
    return apply(_EXP, (x,))


def log(x: Array) -> Array:
    return apply(_LOG, (x,))


def sin(x: Array) -> Array:
    return apply(_SIN, (x,))


def cos(x: Array) -> Array:
    return apply(_COS, (x,))


def tanh(x: Array) -> Array:
    return apply(_TANH, (x,))


def atan(x: Array) -> Array:
    """
    Elementwise arctangent.

    Raises
    ------
    UnsupportedOperandKindError
        If `x` is complex-valued. No node is created.
    """
    return apply(_ATAN, (x,))


def sqrt(x: Array) -> Array:
    return apply(_SQRT, (x,))


def absolute(x: Array) -> Array:
    return apply(_ABS, (x,))


abs = absolute


def sign(x: Array) -> Array:
    return apply(_SIGN, (x,))


def pow_scalar(x: Array, exponent: float) -> Array:
    """Raise `x` elementwise to a fixed real `exponent`."""
    return apply(_POW_SCALAR, (x,), (exponent,))


# ---------------------------------------------------------------------------
# Binary elementwise (broadcasting)
# ---------------------------------------------------------------------------
def add(a: ArrayLike, b: ArrayLike) -> Array:
    return apply(_ADD, _pair_operands(a, b))


def sub(a: ArrayLike, b: ArrayLike) -> Array:
    return apply(_SUB, _pair_operands(a, b))


def mul(a: ArrayLike, b: ArrayLike) -> Array:
    return apply(_MUL, _pair_operands(a, b))


def div(a: ArrayLike, b: ArrayLike) -> Array:
    return apply(_DIV, _pair_operands(a, b))


def scale(x: Array, c: Number) -> Array:
    """``x * c`` for a Python scalar `c`."""
    return mul(x, Array.constant(c, dtype=x.dtype))


def add_scalar(x: Array, c: Number) -> Array:
    """``x + c`` for a Python scalar `c`."""
    return add(x, Array.constant(c, dtype=x.dtype))


def rsub_scalar(c: Number, x: Array) -> Array:
    """``c - x`` for a Python scalar `c`."""
    return sub(Array.constant(c, dtype=x.dtype), x)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------
def broadcast_to(x: Array, dims: Sequence[int]) -> Array:
    """
    Zero-copy broadcast of `x` to `dims` (NumPy rules).

    The result is a view whose broadcast axes have stride 0.
    """
    return apply(_BROADCAST_TO, (x,), tuple(int(d) for d in dims))


def transpose(x: Array, axes: Optional[Sequence[int]] = None) -> Array:
    """
    Zero-copy axis permutation of `x`.

    Parameters
    ----------
    x : Array
        Operand.
    axes : Sequence[int], optional
        Permutation; negative entries count from the end. Defaults to
        reversing the axes.
    """
    if axes is None:
        perm = tuple(reversed(range(x.ndim)))
    else:
        perm = tuple(a + x.ndim if a < 0 else a for a in axes)
    return apply(_TRANSPOSE, (x,), perm)


def reshape(x: Array, dims: Sequence[int]) -> Array:
    """
    Reshape `x` (row-major order). At most one entry of `dims` may be -1; it
    is inferred from the remaining dims.

    Raises
    ------
    InvalidParameterError
        If more than one -1 is given.
    ShapeMismatchError
        If the element counts do not match.
    """
    dims = tuple(int(d) for d in dims)
    if dims.count(-1) > 1:
        raise InvalidParameterError(_RESHAPE.name, f"only one -1 allowed, got {dims}")
    if -1 in dims:
        known = 1
        for d in dims:
            if d != -1:
                known *= d
        if known == 0 or x.size % known != 0:
            raise ShapeMismatchError(
                _RESHAPE.name, f"cannot reshape {x.size} elements to {dims}"
            )
        dims = tuple(x.size // known if d == -1 else d for d in dims)
    if dims == x.dims:
        return x
    return apply(_RESHAPE, (x,), dims)


def sum_axes(x: Array, axes: Sequence[int], keepdims: bool) -> Array:
    """Sum over already-normalized (non-negative) `axes`."""
    return apply(_SUM, (x,), (tuple(sorted(axes)), bool(keepdims)))


def sum(x: Array, axis: Any = None, keepdims: bool = False) -> Array:
    """
    Sum of `x` over `axis` (an int, a sequence of ints, or None for all axes).
    """
    if axis is None:
        axes = tuple(range(x.ndim))
    elif isinstance(axis, int):
        axes = (axis,)
    else:
        axes = tuple(axis)
    axes = tuple(a + x.ndim if a < 0 else a for a in axes)
    return sum_axes(x, axes, keepdims)


def _sum_to_shape_reduce_axes(
    src_shape: Tuple[int, ...], target_shape: Tuple[int, ...]
) -> Tuple[Tuple[int, ...], int]:
    """
    Compute the axes to reduce when summing `src_shape` down to
    `target_shape`.

    Returns ``(reduce_axes, pad)`` where `pad` is the number of leading axes
    `target_shape` lacks. `reduce_axes` contains every leading extra axis and
    every axis where the (left-padded) target has size 1 but the source does
    not.

    Raises
    ------
    ShapeMismatchError
        If `target_shape` could not have been broadcast to `src_shape`.
    """
    if len(target_shape) > len(src_shape):
        raise ShapeMismatchError(
            "sum_to_shape",
            f"target rank {len(target_shape)} > source rank {len(src_shape)}",
        )
    pad = len(src_shape) - len(target_shape)
    padded = (1,) * pad + tuple(target_shape)

    for i, (sd, td) in enumerate(zip(src_shape, padded)):
        if td not in (1, sd):
            raise ShapeMismatchError(
                "sum_to_shape",
                f"cannot reduce {src_shape} to {target_shape}: "
                f"axis {i} has size {sd}, target {td}",
            )

    reduce_axes = tuple(
        i
        for i, (sd, td) in enumerate(zip(src_shape, padded))
        if i < pad or (td == 1 and sd != 1)
    )
    return reduce_axes, pad


def sum_to_shape(x: Array, dims: Sequence[int]) -> Array:
    """
    Reduce `x` to `dims` by summing over broadcast axes.

    This is the reverse of `broadcast_to`, and is how gradients of a broadcast
    operand are formed: sum over leading extra axes, and over axes where the
    target has size 1 and `x` does not. Returns `x` itself when the dims
    already match.
    """
    dims = tuple(int(d) for d in dims)
    if x.dims == dims:
        return x
    reduce_axes, pad = _sum_to_shape_reduce_axes(x.dims, dims)
    out = sum_axes(x, reduce_axes, keepdims=True)
    return reshape(out, dims) if pad else out


# ---------------------------------------------------------------------------
# Convolution
# ---------------------------------------------------------------------------
def conv1d(
    x: Array,
    w: Array,
    b: Optional[Array] = None,
    *,
    stride: int = 1,
    padding: int = 0,
    dilation: int = 1,
    groups: int = 1,
) -> Array:
    """
    Grouped 1-D convolution.

    Parameters
    ----------
    x : Array
        Input ``(N, C_in, L)``.
    w : Array
        Weight ``(C_out, C_in / groups, K)``.
    b : Array, optional
        Bias ``(C_out,)``.
    stride, padding, dilation, groups : int, optional
        Hyperparameters. Padding is implicit zero padding on both sides.

    Returns
    -------
    Array
        Output ``(N, C_out, L_out)`` with
        ``L_out = (L + 2*padding - dilation*(K-1) - 1) // stride + 1``.

    Raises
    ------
    ShapeMismatchError
        On rank, channel, group or bias-length mismatch, or if ``L_out < 1``.
    InvalidParameterError
        On a non-positive stride / dilation / groups or negative padding.
    UnsupportedOperandKindError
        If any operand is complex-valued.
    """
    operands = (x, w) if b is None else (x, w, b)
    return apply(_CONV1D, operands, (stride, padding, dilation, groups))


def conv1d_input_grad(
    grad_y: Array,
    w: Array,
    input_length: int,
    *,
    stride: int = 1,
    padding: int = 0,
    dilation: int = 1,
    groups: int = 1,
) -> Array:
    """Gradient of `conv1d` with respect to its input, ``(N, C_in, input_length)``."""
    return apply(
        _CONV1D_INPUT_GRAD,
        (grad_y, w),
        (stride, padding, dilation, groups, input_length),
    )


def conv1d_weight_grad(
    grad_y: Array,
    x: Array,
    kernel_length: int,
    *,
    stride: int = 1,
    padding: int = 0,
    dilation: int = 1,
    groups: int = 1,
) -> Array:
    """Gradient of `conv1d` with respect to its weight, ``(C_out, C_in/groups, K)``."""
    return apply(
        _CONV1D_WEIGHT_GRAD,
        (grad_y, x),
        (stride, padding, dilation, groups, kernel_length),
    )
