"""
Output-geometry descriptor shared by every node in the computation graph.

`ArrayShape` records the dimension sizes, the element strides used to
linearize those dimensions, and the scalar parameters an operation needs to
replay its shape inference and forward behavior (e.g. convolution stride,
padding, dilation and groups).

Strides are expressed in *elements*, not bytes. A stride of 0 is allowed and
denotes a broadcast dimension (every index along that axis reads the same
element). Negative strides are not produced by any operation and are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence, Tuple


def contiguous_strides(dims: Sequence[int]) -> Tuple[int, ...]:
    """
    Compute row-major (C-order) element strides for `dims`.

    Parameters
    ----------
    dims : Sequence[int]
        Dimension sizes.

    Returns
    -------
    tuple[int, ...]
        Element strides such that the last axis is unit-stride.

    Examples
    --------
    >>> contiguous_strides((2, 3, 4))
    (12, 4, 1)
    >>> contiguous_strides(())
    ()
    """
    strides = []
    acc = 1
    for d in reversed(tuple(dims)):
        strides.append(acc)
        acc *= max(int(d), 1)
    return tuple(reversed(strides))


@dataclass(frozen=True)
class ArrayShape:
    """
    Immutable description of an operation's output geometry.

    Attributes
    ----------
    dims : tuple[int, ...]
        Non-negative dimension sizes.
    strides : tuple[int, ...]
        Element strides, one per dimension.
    params : tuple[Any, ...]
        Operation-specific scalar parameters (must be hashable).
    op_name : str
        Identifier of the operation that produced this shape ("leaf" for
        user-provided arrays).

    Notes
    -----
    Instances are hashable and compare by value, which lets the harness use
    them as memoization keys for shape inference.
    """

    dims: Tuple[int, ...]
    strides: Tuple[int, ...] = field(default=None)  # type: ignore[assignment]
    params: Tuple[Any, ...] = ()
    op_name: str = "leaf"

    def __post_init__(self) -> None:
        dims = tuple(int(d) for d in self.dims)
        if any(d < 0 for d in dims):
            raise ValueError(f"dims must be non-negative, got {dims}")

        strides = (
            contiguous_strides(dims)
            if self.strides is None
            else tuple(int(s) for s in self.strides)
        )
        if len(strides) != len(dims):
            raise ValueError(
                f"len(dims) != len(strides): {len(dims)} vs {len(strides)}"
            )
        if any(s < 0 for s in strides):
            raise ValueError(f"strides must be non-negative, got {strides}")

        object.__setattr__(self, "dims", dims)
        object.__setattr__(self, "strides", strides)
        object.__setattr__(self, "params", tuple(self.params))
        hash(self.params)

    @classmethod
    def contiguous(
        cls, dims: Sequence[int], params: Sequence[Any] = (), op_name: str = "leaf"
    ) -> "ArrayShape":
        """Build a row-major ArrayShape for `dims`."""
        return cls(tuple(dims), contiguous_strides(dims), tuple(params), op_name)

    @property
    def ndim(self) -> int:
        return len(self.dims)

    @property
    def size(self) -> int:
        n = 1
        for d in self.dims:
            n *= d
        return n

    @property
    def is_contiguous(self) -> bool:
        """
        Whether the strides are exactly row-major for these dims.

        Size-1 axes are ignored, since their stride never contributes to an
        offset.
        """
        expected = contiguous_strides(self.dims)
        return all(
            d == 1 or s == e for d, s, e in zip(self.dims, self.strides, expected)
        )

    @property
    def span(self) -> int:
        """Number of storage elements addressed by this geometry (max offset + 1)."""
        if self.size == 0:
            return 0
        return 1 + sum((d - 1) * s for d, s in zip(self.dims, self.strides))

    def __repr__(self) -> str:
        return (
            f"ArrayShape(dims={self.dims}, strides={self.strides}, "
            f"params={self.params}, op_name={self.op_name!r})"
        )
