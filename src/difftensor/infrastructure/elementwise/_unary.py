"""
Unary elementwise operations.

Each class binds a lane kernel from `ops.elementwise_cpu` and, when the
function is differentiable, a `linearized` rule multiplying the incoming
tangent / cotangent by the derivative. Rules are composed from other
registered operations, so their results are differentiable as well.

Complex support
---------------
neg, conj, real, exp, log, sin, cos and tanh implement complex operands.
atan, sqrt, abs, sign and pow_scalar are real-only: the harness rejects
complex operands before creating a node.
"""

from __future__ import annotations

import functools
import numbers
from typing import Any, Tuple

from ...domain._errors import InvalidParameterError
from .._registry import operation_registry
from ..ops.elementwise_cpu import (
    abs_lanes,
    atan_lanes,
    conj_lanes,
    cos_lanes,
    exp_lanes,
    log_lanes,
    neg_lanes,
    pow_scalar_lanes,
    real_lanes,
    sign_lanes,
    sin_lanes,
    sqrt_lanes,
    tanh_lanes,
)
from ._base import UnaryElementwiseOperation


@operation_registry.register("neg")
class NegOp(UnaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(neg_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import neg

        return neg(t)


@operation_registry.register("conj")
class ConjOp(UnaryElementwiseOperation):
    """
    Complex conjugate. Identity on real operands.

    `conj` is not holomorphic; its derivative (and transpose) is `conj`
    applied to the tangent.
    """

    supports_complex = True
    vectorized_kernel = staticmethod(conj_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import conj

        return conj(t)


@operation_registry.register("real")
class RealOp(UnaryElementwiseOperation):
    """
    Real part. The output is always real-valued.

    The reverse-mode driver also uses this op to project a complex cotangent
    onto a real primal.
    """

    supports_complex = True
    vectorized_kernel = staticmethod(real_lanes)

    def result_is_complex(self, operand_flags) -> bool:
        return False

    def linearized(self, primals, index, t, output):
        from .._functional import real

        return real(t)


@operation_registry.register("exp")
class ExpOp(UnaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(exp_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import mul

        # d exp(x) = exp(x) dx; reuse the forward output.
        return mul(t, output)


@operation_registry.register("log")
class LogOp(UnaryElementwiseOperation):
    """Natural logarithm (principal branch for complex operands)."""

    supports_complex = True
    vectorized_kernel = staticmethod(log_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import div

        return div(t, primals[0])


@operation_registry.register("sin")
class SinOp(UnaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(sin_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import cos, mul

        return mul(t, cos(primals[0]))


@operation_registry.register("cos")
class CosOp(UnaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(cos_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import mul, neg, sin

        return neg(mul(t, sin(primals[0])))


@operation_registry.register("tanh")
class TanhOp(UnaryElementwiseOperation):
    supports_complex = True
    vectorized_kernel = staticmethod(tanh_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import mul, rsub_scalar

        return mul(t, rsub_scalar(1.0, mul(output, output)))


@operation_registry.register("atan")
class AtanOp(UnaryElementwiseOperation):
    """
    Elementwise arctangent (real operands only).

    Derivative:

        d atan(x) = dx / (1 + x^2)
    """

    vectorized_kernel = staticmethod(atan_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import add_scalar, div, mul

        x = primals[0]
        return div(t, add_scalar(mul(x, x), 1.0))


@operation_registry.register("sqrt")
class SqrtOp(UnaryElementwiseOperation):
    vectorized_kernel = staticmethod(sqrt_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import add, div

        return div(t, add(output, output))


@operation_registry.register("abs")
class AbsOp(UnaryElementwiseOperation):
    """
    Absolute value (real operands only).

    The derivative at 0 is taken to be 0 (``sign(0) == 0``).
    """

    vectorized_kernel = staticmethod(abs_lanes)

    def linearized(self, primals, index, t, output):
        from .._functional import mul, sign

        return mul(t, sign(primals[0]))


@operation_registry.register("sign")
class SignOp(UnaryElementwiseOperation):
    """
    Elementwise sign (real operands only).

    Piecewise constant: both derivative rules report `NO_GRADIENT`.
    """

    vectorized_kernel = staticmethod(sign_lanes)


@operation_registry.register("pow_scalar")
class PowScalarOp(UnaryElementwiseOperation):
    """
    Raise a real array to a fixed real exponent.

    Params
    ------
    (exponent,) : tuple[float]
    """

    vectorized_kernel = staticmethod(pow_scalar_lanes)

    def validate_params(self, params: Tuple[Any, ...]) -> Tuple[Any, ...]:
        if (
            len(params) != 1
            or isinstance(params[0], bool)
            or not isinstance(params[0], numbers.Real)
        ):
            raise InvalidParameterError(
                self.name, f"expected params (exponent,), got {params!r}"
            )
        return (float(params[0]),)

    def lane_kernel(self, output):
        (exponent,) = output.shape.params
        return functools.partial(pow_scalar_lanes, exponent=exponent)

    def linearized(self, primals, index, t, output):
        from .._functional import mul, pow_scalar, scale

        (p,) = output.shape.params
        if p == 0.0:
            # x**0 is constant; avoid 0 * x**-1 at x == 0.
            return scale(t, 0.0)
        return mul(t, scale(pow_scalar(primals[0], p - 1.0), p))


__all__ = [
    NegOp.__name__,
    ConjOp.__name__,
    RealOp.__name__,
    ExpOp.__name__,
    LogOp.__name__,
    SinOp.__name__,
    CosOp.__name__,
    TanhOp.__name__,
    AtanOp.__name__,
    SqrtOp.__name__,
    AbsOp.__name__,
    SignOp.__name__,
    PowScalarOp.__name__,
]
