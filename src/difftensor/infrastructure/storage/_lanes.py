"""
Fixed-width lane batching for elementwise kernels.

Elementwise operations describe their arithmetic as a *vectorized kernel*
that maps equal-length runs of elements ("lanes") to output lanes. The
runners in this module split flat, contiguous operand planes into batches of
`lane_width` elements and write each batch's result into the matching,
non-overlapping slice of the output planes.

Kernel signatures
-----------------
- unary:  ``kernel(re, im) -> (re_out, im_out)``
- binary: ``kernel(a_re, a_im, b_re, b_im) -> (re_out, im_out)``

`im` arguments are None for real operands; `im_out` must be None when the
output has no imaginary plane, and an array otherwise.
"""

from typing import Callable, Iterator, Optional, Tuple

import numpy as np

Lane = np.ndarray
UnaryKernel = Callable[[Lane, Optional[Lane]], Tuple[Lane, Optional[Lane]]]
BinaryKernel = Callable[
    [Lane, Optional[Lane], Lane, Optional[Lane]], Tuple[Lane, Optional[Lane]]
]


def lane_batches(n: int, width: int) -> Iterator[slice]:
    """
    Yield consecutive slices covering ``range(n)`` in batches of `width`.

    The final batch is shorter when `n` is not a multiple of `width`.

    Examples
    --------
    >>> [(s.start, s.stop) for s in lane_batches(10, 4)]
    [(0, 4), (4, 8), (8, 10)]
    """
    if width < 1:
        raise ValueError(f"lane width must be >= 1, got {width}")
    for start in range(0, n, width):
        yield slice(start, min(start + width, n))


def run_unary_lanes(
    kernel: UnaryKernel,
    src_re: np.ndarray,
    src_im: Optional[np.ndarray],
    dst_re: np.ndarray,
    dst_im: Optional[np.ndarray],
    width: int,
) -> None:
    """
    Apply a unary lane kernel over flat planes.

    Parameters
    ----------
    kernel : UnaryKernel
        Lane kernel.
    src_re, src_im : np.ndarray, Optional[np.ndarray]
        Flat operand planes of equal length.
    dst_re, dst_im : np.ndarray, Optional[np.ndarray]
        Flat, writable output planes of the same length.
    width : int
        Lane width.
    """
    for sl in lane_batches(dst_re.shape[0], width):
        re, im = kernel(src_re[sl], None if src_im is None else src_im[sl])
        dst_re[sl] = re
        if dst_im is not None:
            dst_im[sl] = im


def run_binary_lanes(
    kernel: BinaryKernel,
    a_re: np.ndarray,
    a_im: Optional[np.ndarray],
    b_re: np.ndarray,
    b_im: Optional[np.ndarray],
    dst_re: np.ndarray,
    dst_im: Optional[np.ndarray],
    width: int,
) -> None:
    """
    Apply a binary lane kernel over flat planes (already broadcast to the
    output length).
    """
    for sl in lane_batches(dst_re.shape[0], width):
        re, im = kernel(
            a_re[sl],
            None if a_im is None else a_im[sl],
            b_re[sl],
            None if b_im is None else b_im[sl],
        )
        dst_re[sl] = re
        if dst_im is not None:
            dst_im[sl] = im
