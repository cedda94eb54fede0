"""
CPU-based naive grouped Conv1D kernels for difftensor.

This module provides reference implementations of grouped 1-D convolution
and its two gradient companions using explicit Python loops over flat
storage planes. They are written for correctness and clarity rather than
speed, and serve as the structured-kernel exemplar of the framework.

Tensor layout
-------------
- input  : (N, C_in, L)
- weight : (C_out, C_in / groups, K)
- bias   : (C_out,)
- output : (N, C_out, L_out)

with

    L_out = floor((L + 2 * padding - dilation * (K - 1) - 1) / stride) + 1

Strided access
--------------
Kernels never assume a contiguous layout: every operand is passed as a
`StridedPlane` (flat storage, element offset, element strides) and every
index is computed from that operand's own stride vector. Padding is
implicit: positions that fall outside ``[0, L)`` are skipped, never
materialized as a padded buffer.

Partitioning
------------
Each kernel processes a half-open range of one outer dimension (batch for
forward / input-grad, output channel for weight-grad) so callers can split
work with `parallel_for`. Ranges write disjoint output addresses.
"""

from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass
from typing import Optional

StridedPlane = namedtuple("StridedPlane", ["data", "offset", "strides"])
"""
Flat storage plane plus geometry.

Fields
------
data : np.ndarray
    1-D storage.
offset : int
    Element offset of index (0, ..., 0).
strides : tuple[int, ...]
    Element strides.
"""


def conv1d_output_length(
    length: int, kernel_length: int, stride: int, padding: int, dilation: int
) -> int:
    """
    Compute the Conv1D output length.

    Examples
    --------
    >>> conv1d_output_length(10, 3, stride=2, padding=1, dilation=1)
    5
    """
    return (length + 2 * padding - dilation * (kernel_length - 1) - 1) // stride + 1


@dataclass(frozen=True)
class Conv1dGeometry:
    """
    Sizes and hyperparameters shared by the three Conv1D kernels.
    """

    batch: int
    in_channels: int
    length: int
    out_channels: int
    kernel_length: int
    out_length: int
    stride: int
    padding: int
    dilation: int
    groups: int

    @property
    def in_per_group(self) -> int:
        return self.in_channels // self.groups

    @property
    def out_per_group(self) -> int:
        return self.out_channels // self.groups


def conv1d_forward_strided(
    geom: Conv1dGeometry,
    x: StridedPlane,
    w: StridedPlane,
    b: Optional[StridedPlane],
    y: StridedPlane,
    n_start: int,
    n_stop: int,
) -> None:
    """
    Compute ``y[n, co, o] = b[co] + sum x[n, ci, o*s - p + k*d] * w[co, cig, k]``
    for batches ``n_start <= n < n_stop``.

    The inner sum runs over the in-channels of the output channel's group
    (``ci = group * in_per_group + cig``) and over kernel positions.
    """
    xd, xo, (xs0, xs1, xs2) = x
    wd, wo, (ws0, ws1, ws2) = w
    yd, yo, (ys0, ys1, ys2) = y
    cin_g = geom.in_per_group
    cout_g = geom.out_per_group
    L = geom.length

    for n in range(n_start, n_stop):
        for co in range(geom.out_channels):
            g = co // cout_g
            bias = 0.0 if b is None else b.data[b.offset + co * b.strides[0]]
            for o in range(geom.out_length):
                acc = bias
                base = o * geom.stride - geom.padding
                for cig in range(cin_g):
                    ci = g * cin_g + cig
                    x_row = xo + n * xs0 + ci * xs1
                    w_row = wo + co * ws0 + cig * ws1
                    for k in range(geom.kernel_length):
                        pos = base + k * geom.dilation
                        if pos < 0 or pos >= L:
                            continue
                        acc += xd[x_row + pos * xs2] * wd[w_row + k * ws2]
                yd[yo + n * ys0 + co * ys1 + o * ys2] = acc


def conv1d_input_grad_strided(
    geom: Conv1dGeometry,
    gy: StridedPlane,
    w: StridedPlane,
    gx: StridedPlane,
    n_start: int,
    n_stop: int,
) -> None:
    """
    Accumulate ``gx[n, ci, l] += gy[n, co, o] * w[co, cig, k]`` for every
    ``l = o*s - p + k*d`` inside ``[0, L)``.

    `gx` must be zero-initialized for the processed batches.
    """
    gd, go, (gs0, gs1, gs2) = gy
    wd, wo, (ws0, ws1, ws2) = w
    xd, xo, (xs0, xs1, xs2) = gx
    cin_g = geom.in_per_group
    cout_g = geom.out_per_group
    L = geom.length

    for n in range(n_start, n_stop):
        for co in range(geom.out_channels):
            g = co // cout_g
            for o in range(geom.out_length):
                grad = gd[go + n * gs0 + co * gs1 + o * gs2]
                if grad == 0:
                    continue
                base = o * geom.stride - geom.padding
                for cig in range(cin_g):
                    ci = g * cin_g + cig
                    x_row = xo + n * xs0 + ci * xs1
                    w_row = wo + co * ws0 + cig * ws1
                    for k in range(geom.kernel_length):
                        pos = base + k * geom.dilation
                        if pos < 0 or pos >= L:
                            continue
                        xd[x_row + pos * xs2] += grad * wd[w_row + k * ws2]


def conv1d_weight_grad_strided(
    geom: Conv1dGeometry,
    gy: StridedPlane,
    x: StridedPlane,
    gw: StridedPlane,
    co_start: int,
    co_stop: int,
) -> None:
    """
    Compute ``gw[co, cig, k] = sum_{n, o} gy[n, co, o] * x[n, ci, o*s - p + k*d]``
    for output channels ``co_start <= co < co_stop``.
    """
    gd, go, (gs0, gs1, gs2) = gy
    xd, xo, (xs0, xs1, xs2) = x
    wd, wo, (ws0, ws1, ws2) = gw
    cin_g = geom.in_per_group
    cout_g = geom.out_per_group
    L = geom.length

    for co in range(co_start, co_stop):
        g = co // cout_g
        for cig in range(cin_g):
            ci = g * cin_g + cig
            for k in range(geom.kernel_length):
                acc = 0.0
                for n in range(geom.batch):
                    g_row = go + n * gs0 + co * gs1
                    x_row = xo + n * xs0 + ci * xs1
                    for o in range(geom.out_length):
                        pos = o * geom.stride - geom.padding + k * geom.dilation
                        if pos < 0 or pos >= L:
                            continue
                        acc += gd[g_row + o * gs2] * xd[x_row + pos * xs2]
                wd[wo + co * ws0 + cig * ws1 + k * ws2] = acc
