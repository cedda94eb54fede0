"""
Buffer-level boundary helpers for CPU Conv1D kernels.

These helpers sit between `Conv1dOp` (and its gradient companions) and the
naive loop kernels in `conv1d_cpu`:

- they turn `Buffer` objects into `StridedPlane` views of their storage
  (storage plane, element offset, element strides), so kernels can read
  non-contiguous operands in place,
- they split the outer loop with `parallel_for`,
- they write into output buffers allocated by the harness.

Operation classes never touch NumPy storage directly; everything that does
lives here or in `conv1d_cpu`.
"""

from __future__ import annotations

from typing import Optional

from ..storage._buffer import Buffer
from ..storage._parallel import parallel_for
from .conv1d_cpu import (
    Conv1dGeometry,
    StridedPlane,
    conv1d_forward_strided,
    conv1d_input_grad_strided,
    conv1d_weight_grad_strided,
)


def _plane(buf: Buffer) -> StridedPlane:
    return StridedPlane(buf.real_storage, buf.offset, buf.strides)


def conv1d_forward_cpu(
    geom: Conv1dGeometry,
    x: Buffer,
    w: Buffer,
    b: Optional[Buffer],
    y: Buffer,
    *,
    num_workers: int = 1,
) -> None:
    """
    Grouped Conv1D forward into `y`, partitioned over the batch dimension.

    Parameters
    ----------
    geom : Conv1dGeometry
        Sizes and hyperparameters.
    x, w : Buffer
        Input ``(N, C_in, L)`` and weight ``(C_out, C_in/groups, K)``; any
        strides.
    b : Optional[Buffer]
        Bias ``(C_out,)`` or None.
    y : Buffer
        Owned output buffer ``(N, C_out, L_out)``.
    num_workers : int, optional
        Worker threads for the batch partition. Defaults to 1.
    """
    xp, wp, yp = _plane(x), _plane(w), _plane(y)
    bp = None if b is None else _plane(b)

    def body(start: int, stop: int) -> None:
        conv1d_forward_strided(geom, xp, wp, bp, yp, start, stop)

    parallel_for(geom.batch, body, num_workers=num_workers)


def conv1d_input_grad_cpu(
    geom: Conv1dGeometry,
    gy: Buffer,
    w: Buffer,
    gx: Buffer,
    *,
    num_workers: int = 1,
) -> None:
    """
    Gradient of Conv1D with respect to its input, written into the
    zero-initialized buffer `gx` ``(N, C_in, L)``.

    Batches are independent, so the batch dimension is partitioned.
    """
    gyp, wp, gxp = _plane(gy), _plane(w), _plane(gx)

    def body(start: int, stop: int) -> None:
        conv1d_input_grad_strided(geom, gyp, wp, gxp, start, stop)

    parallel_for(geom.batch, body, num_workers=num_workers)


def conv1d_weight_grad_cpu(
    geom: Conv1dGeometry,
    gy: Buffer,
    x: Buffer,
    gw: Buffer,
    *,
    num_workers: int = 1,
) -> None:
    """
    Gradient of Conv1D with respect to its weight, written into `gw`
    ``(C_out, C_in/groups, K)``.

    Each output channel reduces over the whole batch, so the partition runs
    over output channels instead.
    """
    gyp, xp, gwp = _plane(gy), _plane(x), _plane(gw)

    def body(start: int, stop: int) -> None:
        conv1d_weight_grad_strided(geom, gyp, xp, gwp, start, stop)

    parallel_for(geom.out_channels, body, num_workers=num_workers)
