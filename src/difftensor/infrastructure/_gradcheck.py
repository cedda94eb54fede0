"""
Numerical checks for derivative rules.

- `numerical_jvp` estimates a directional derivative with central
  differences.
- `check_jvp` compares the forward-mode driver against that estimate.
- `check_vjp` checks the duality between reverse and forward mode:

      dot(vjp(g), v) == dot(g, jvp(v))

  where ``dot(a, b) = Re(sum(a * b))`` is the real part of the
  non-conjugating product. For holomorphic functions the full complex values
  agree as well; the real part also covers `conj` and `real`.

All checks raise `AssertionError` (via `numpy.testing`) on mismatch, so they
can be used directly inside test cases.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from ._array import Array
from ._autodiff import jvp, vjp


def _values(xs: Sequence[Any]) -> List[np.ndarray]:
    return [x.to_numpy() if isinstance(x, Array) else np.asarray(x) for x in xs]


def _random_like(rng: np.random.Generator, x: np.ndarray) -> np.ndarray:
    v = rng.standard_normal(x.shape)
    if np.iscomplexobj(x):
        v = v + 1j * rng.standard_normal(x.shape)
    return v


def _dot(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.real(np.sum(a * b)))


def numerical_jvp(
    fn: Callable[..., Array],
    primals: Sequence[Any],
    tangents: Sequence[Any],
    *,
    eps: float = 1e-6,
) -> np.ndarray:
    """
    Central-difference estimate of the JVP of `fn` at `primals`.

    ``(fn(x + eps*v) - fn(x - eps*v)) / (2*eps)``
    """
    xs = _values(primals)
    vs = _values(tangents)
    plus = fn(*(Array.from_numpy(x + eps * v) for x, v in zip(xs, vs))).to_numpy()
    minus = fn(*(Array.from_numpy(x - eps * v) for x, v in zip(xs, vs))).to_numpy()
    return (plus - minus) / (2.0 * eps)


def check_jvp(
    fn: Callable[..., Array],
    primals: Sequence[Any],
    tangents: Optional[Sequence[Any]] = None,
    *,
    eps: float = 1e-6,
    rtol: float = 1e-5,
    atol: float = 1e-6,
    seed: int = 0,
) -> None:
    """
    Assert that `jvp` agrees with central differences.

    Random tangents are drawn when `tangents` is None.
    """
    xs = _values(primals)
    if tangents is None:
        rng = np.random.default_rng(seed)
        tangents = [_random_like(rng, x) for x in xs]
    vs = _values(tangents)

    _, t_out = jvp(fn, [Array.from_numpy(x) for x in xs], [Array.from_numpy(v) for v in vs])
    expected = numerical_jvp(fn, xs, vs, eps=eps)
    np.testing.assert_allclose(
        t_out.to_numpy(), expected, rtol=rtol, atol=atol, err_msg="jvp vs finite differences"
    )


def check_vjp(
    fn: Callable[..., Array],
    primals: Sequence[Any],
    *,
    cotangent: Optional[Any] = None,
    tangents: Optional[Sequence[Any]] = None,
    rtol: float = 1e-6,
    atol: float = 1e-8,
    seed: int = 0,
) -> None:
    """
    Assert VJP/JVP duality at `primals`.

    Random tangents and a random cotangent are drawn when not given.
    """
    rng = np.random.default_rng(seed)
    xs = _values(primals)
    if tangents is None:
        tangents = [_random_like(rng, x) for x in xs]
    vs = _values(tangents)

    arrays = [Array.from_numpy(x) for x in xs]
    out, t_out = jvp(fn, arrays, [Array.from_numpy(v) for v in vs])
    out_np = out.to_numpy()
    g = _random_like(rng, out_np) if cotangent is None else np.asarray(cotangent)

    _, pullback = vjp(fn, *arrays)
    grads = [gi.to_numpy() for gi in pullback(Array.from_numpy(g))]

    lhs = sum(_dot(gi, v) for gi, v in zip(grads, vs))
    rhs = _dot(g, t_out.to_numpy())
    np.testing.assert_allclose(lhs, rhs, rtol=rtol, atol=atol, err_msg="vjp/jvp duality")


def check_grads(
    fn: Callable[..., Array], primals: Sequence[Any], *, seed: int = 0, **tolerances: float
) -> None:
    """Run `check_jvp` and `check_vjp` at `primals`."""
    jvp_tol = {k: v for k, v in tolerances.items() if k in ("eps", "rtol", "atol")}
    vjp_tol = {k: v for k, v in tolerances.items() if k in ("rtol", "atol")}
    check_jvp(fn, primals, seed=seed, **jvp_tol)
    check_vjp(fn, primals, seed=seed, **vjp_tol)
