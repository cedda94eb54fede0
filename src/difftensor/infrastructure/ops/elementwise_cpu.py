"""
CPU lane kernels for elementwise operations (NumPy).

Each kernel maps equal-length lanes to output lanes and is pure NumPy; no
graph or autograd concepts appear here. Complex values are represented as
separate real and imaginary lanes; an imaginary argument of None means the
operand is real.

Unary kernels
-------------
``kernel(re, im) -> (re_out, im_out)``

Binary kernels
--------------
``kernel(a_re, a_im, b_re, b_im) -> (re_out, im_out)``

Kernels for real-only operations reject complex lanes with
`UnsupportedOperandKindError` instead of silently dropping the imaginary
part.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ...domain._errors import UnsupportedOperandKindError

Lane = np.ndarray
LanePair = Tuple[Lane, Optional[Lane]]


def _real_only(name: str, im: Optional[Lane]) -> None:
    if im is not None:
        raise UnsupportedOperandKindError(name, "complex")


def _im(im: Optional[Lane], like: Lane) -> Lane:
    return np.zeros_like(like) if im is None else im


# ---------------------------------------------------------------------------
# Unary
# ---------------------------------------------------------------------------
def neg_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    return -re, None if im is None else -im


def conj_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    return re.copy(), None if im is None else -im


def real_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    return re.copy(), None


def exp_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    # exp(a + ib) = e^a (cos b + i sin b)
    m = np.exp(re)
    if im is None:
        return m, None
    return m * np.cos(im), m * np.sin(im)


def log_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    # principal branch: log|z| + i arg(z)
    if im is None:
        return np.log(re), None
    return np.log(np.hypot(re, im)), np.arctan2(im, re)


def sin_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    if im is None:
        return np.sin(re), None
    return np.sin(re) * np.cosh(im), np.cos(re) * np.sinh(im)


def cos_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    if im is None:
        return np.cos(re), None
    return np.cos(re) * np.cosh(im), -np.sin(re) * np.sinh(im)


def tanh_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    if im is None:
        return np.tanh(re), None
    # saturates to sign(a) for large |a|
    z = np.tanh(re + 1j * im)
    return z.real.astype(re.dtype, copy=False), z.imag.astype(re.dtype, copy=False)


def atan_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    _real_only("atan", im)
    return np.arctan(re), None


def sqrt_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    _real_only("sqrt", im)
    return np.sqrt(re), None


def abs_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    _real_only("abs", im)
    return np.abs(re), None


def sign_lanes(re: Lane, im: Optional[Lane]) -> LanePair:
    _real_only("sign", im)
    return np.sign(re), None


def pow_scalar_lanes(re: Lane, im: Optional[Lane], *, exponent: float) -> LanePair:
    _real_only("pow_scalar", im)
    return np.power(re, exponent), None


# ---------------------------------------------------------------------------
# Binary
# ---------------------------------------------------------------------------
def add_lanes(a_re: Lane, a_im: Optional[Lane], b_re: Lane, b_im: Optional[Lane]) -> LanePair:
    if a_im is None and b_im is None:
        return a_re + b_re, None
    return a_re + b_re, _im(a_im, a_re) + _im(b_im, b_re)


def sub_lanes(a_re: Lane, a_im: Optional[Lane], b_re: Lane, b_im: Optional[Lane]) -> LanePair:
    if a_im is None and b_im is None:
        return a_re - b_re, None
    return a_re - b_re, _im(a_im, a_re) - _im(b_im, b_re)


def mul_lanes(a_re: Lane, a_im: Optional[Lane], b_re: Lane, b_im: Optional[Lane]) -> LanePair:
    if a_im is None and b_im is None:
        return a_re * b_re, None
    ai = _im(a_im, a_re)
    bi = _im(b_im, b_re)
    return a_re * b_re - ai * bi, a_re * bi + ai * b_re


def div_lanes(a_re: Lane, a_im: Optional[Lane], b_re: Lane, b_im: Optional[Lane]) -> LanePair:
    if a_im is None and b_im is None:
        return a_re / b_re, None
    ai = _im(a_im, a_re)
    bi = _im(b_im, b_re)
    # (a + ib) / (c + id) = ((ac + bd) + i(bc - ad)) / (c^2 + d^2)
    den = b_re * b_re + bi * bi
    return (a_re * b_re + ai * bi) / den, (ai * b_re - a_re * bi) / den
