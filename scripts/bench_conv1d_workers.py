"""
scripts/bench_conv1d_workers.py

Serial vs threaded Conv1D microbenchmark (NOT a unit test) for difftensor.

Benchmarks, for each case:
- forward: conv1d(x, w, b)
- backward: input gradient + weight gradient of sum(conv1d(x, w, b))

Timing policy
-------------
- Input arrays are built once per case (outside timing).
- Each timed call builds a fresh graph and materializes it, so shape-cache
  hits are included but no values are reused between repeats.
- Uses warmup iterations before timed repeats.

The kernels are naive Python loops; keep sizes small.

Usage
-----
python scripts/bench_conv1d_workers.py --presets --sanity
python scripts/bench_conv1d_workers.py --N 8 --Cin 4 --Cout 8 --L 64 --K 3 --groups 2 --workers 4
"""

from __future__ import annotations

import argparse
import os
import statistics
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

# -------------------------
# Make repo_root/src importable
# -------------------------
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from difftensor import Array, config_scope, conv1d, grad


def _median(xs: list[float]) -> float:
    return statistics.median(xs)


def _fmt_seconds(x: float) -> str:
    if x < 1e-6:
        return f"{x*1e9:.2f} ns"
    if x < 1e-3:
        return f"{x*1e6:.2f} µs"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


def _speedup(serial_s: float, threaded_s: float) -> float:
    return (serial_s / threaded_s) if threaded_s > 0 else float("inf")


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()
    ts: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        t1 = time.perf_counter()
        ts.append(t1 - t0)
    return ts


@dataclass(frozen=True)
class Case:
    name: str
    N: int
    Cin: int
    Cout: int
    L: int
    K: int
    stride: int
    padding: int
    dilation: int
    groups: int
    bias: bool


def _make_case_arrays(
    rng: np.random.Generator, c: Case, dtype: np.dtype
) -> Tuple[Array, Array, Optional[Array]]:
    x = rng.standard_normal((c.N, c.Cin, c.L)).astype(dtype, copy=False)
    w = rng.standard_normal((c.Cout, c.Cin // c.groups, c.K)).astype(dtype, copy=False)
    b = rng.standard_normal((c.Cout,)).astype(dtype, copy=False) if c.bias else None
    return (
        Array.from_numpy(x),
        Array.from_numpy(w),
        None if b is None else Array.from_numpy(b),
    )


def bench_case(
    c: Case,
    *,
    dtype: np.dtype,
    workers: int,
    warmup: int,
    repeats: int,
    sanity: bool,
    seed: int,
) -> None:
    rng = np.random.default_rng(seed)
    x, w, b = _make_case_arrays(rng, c, np.dtype(dtype))
    kw = dict(stride=c.stride, padding=c.padding, dilation=c.dilation, groups=c.groups)

    def fwd() -> np.ndarray:
        return conv1d(x, w, b, **kw).to_numpy()

    def loss(x_: Array, w_: Array) -> Array:
        return conv1d(x_, w_, b, **kw).sum()

    def bwd() -> Tuple[np.ndarray, np.ndarray]:
        gx, gw = grad(loss, argnums=(0, 1))(x, w)
        return gx.to_numpy(), gw.to_numpy()

    # -------------------------
    # Sanity check (not timed)
    # -------------------------
    if sanity:
        with config_scope(num_workers=1):
            y_serial, g_serial = fwd(), bwd()
        with config_scope(num_workers=workers):
            y_threaded, g_threaded = fwd(), bwd()
        np.testing.assert_array_equal(y_threaded, y_serial)
        for a, s in zip(g_threaded, g_serial):
            np.testing.assert_allclose(a, s, rtol=1e-12, atol=1e-12)

    # -------------------------
    # Timed regions
    # -------------------------
    results = {}
    for label, n in (("serial", 1), ("threaded", workers)):
        with config_scope(num_workers=n):
            t_fwd = _time_one(fwd, warmup=warmup, repeats=repeats)
            t_bwd = _time_one(bwd, warmup=warmup, repeats=repeats)
        results[label] = (_median(t_fwd), _median(t_bwd))

    (s_fwd, s_bwd), (t_fwd, t_bwd) = results["serial"], results["threaded"]
    print(
        f"{c.name}: "
        f"N={c.N} Cin={c.Cin} Cout={c.Cout} L={c.L} K={c.K} "
        f"s={c.stride} p={c.padding} d={c.dilation} g={c.groups} bias={c.bias} | "
        f"fwd serial={_fmt_seconds(s_fwd):>10} x{workers}={_fmt_seconds(t_fwd):>10} "
        f"({_speedup(s_fwd, t_fwd):.2f}x)  "
        f"bwd serial={_fmt_seconds(s_bwd):>10} x{workers}={_fmt_seconds(t_bwd):>10} "
        f"({_speedup(s_bwd, t_bwd):.2f}x)"
    )


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--N", type=int, default=4)
    ap.add_argument("--Cin", type=int, default=4)
    ap.add_argument("--Cout", type=int, default=8)
    ap.add_argument("--L", type=int, default=64)
    ap.add_argument("--K", type=int, default=3)
    ap.add_argument("--stride", type=int, default=1)
    ap.add_argument("--padding", type=int, default=1)
    ap.add_argument("--dilation", type=int, default=1)
    ap.add_argument("--groups", type=int, default=1)

    ap.add_argument("--bias", action="store_true")
    ap.add_argument("--no-bias", dest="bias", action="store_false")
    ap.set_defaults(bias=True)

    ap.add_argument("--dtype", choices=["float32", "float64"], default="float64")
    ap.add_argument("--workers", type=int, default=max(1, min(4, os.cpu_count() or 1)))
    ap.add_argument("--warmup", type=int, default=1)
    ap.add_argument("--repeats", type=int, default=5)
    ap.add_argument("--presets", action="store_true")
    ap.add_argument("--sanity", action="store_true")
    ap.add_argument("--seed", type=int, default=0)
    args = ap.parse_args()

    dtype = np.float32 if args.dtype == "float32" else np.float64

    if args.presets:
        cases = [
            Case("small", 4, 4, 8, 64, 3, 1, 1, 1, 1, True),
            Case("strided", 8, 8, 8, 128, 5, 2, 2, 1, 1, True),
            Case("dilated-grouped", 8, 8, 16, 96, 3, 1, 2, 2, 4, False),
        ]
    else:
        cases = [
            Case(
                "custom",
                args.N,
                args.Cin,
                args.Cout,
                args.L,
                args.K,
                args.stride,
                args.padding,
                args.dilation,
                args.groups,
                args.bias,
            )
        ]

    print(f"workers={args.workers} dtype={args.dtype}")
    for c in cases:
        bench_case(
            c,
            dtype=dtype,
            workers=args.workers,
            warmup=args.warmup,
            repeats=args.repeats,
            sanity=args.sanity,
            seed=args.seed,
        )


if __name__ == "__main__":
    main()
