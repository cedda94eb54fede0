"""
Typed, strided, optionally complex dense storage.

A `Buffer` pairs one (real) or two (real + imaginary) flat NumPy storage
planes with a geometry: dims, element strides and an element offset into the
planes. Buffers either *own* their planes (created by `allocate` /
`from_numpy`) or *view* another buffer's planes with a different geometry
(created by `view`), in which case they are read-only.

The complex representation keeps the real and imaginary planes separate, so
elementwise kernels can process real and imaginary lanes independently.

Boundary notes
--------------
- This module is the only place that builds NumPy views from raw storage
  (`numpy.lib.stride_tricks.as_strided`). Kernels receive either strided
  views (`real_view` / `imag_view`) or flat storage plus strides.
- `make_contiguous` is the "force contiguous" utility consumed by
  elementwise kernels: it returns `self` when already row-major, otherwise a
  freshly owned row-major copy.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np
from numpy.lib.stride_tricks import as_strided

from ...domain._array_shape import contiguous_strides


class Buffer:
    """
    Strided storage for one array node.

    Parameters
    ----------
    real : np.ndarray
        1-D real storage plane.
    imag : Optional[np.ndarray]
        1-D imaginary storage plane (same length and dtype as `real`), or
        None for real-valued storage.
    dims : Sequence[int]
        Logical dimension sizes.
    strides : Sequence[int]
        Element strides, one per dimension.
    offset : int, optional
        Element offset of index (0, ..., 0) into the planes. Defaults to 0.
    base : Optional[Buffer], optional
        The owning buffer when this buffer is a view. Defaults to None
        (this buffer owns its planes).

    Raises
    ------
    ValueError
        If the planes are not 1-D, disagree in length/dtype, or the geometry
        addresses elements outside the planes.
    """

    __slots__ = ("_real", "_imag", "_dims", "_strides", "_offset", "_base")

    def __init__(
        self,
        real: np.ndarray,
        imag: Optional[np.ndarray],
        dims: Sequence[int],
        strides: Sequence[int],
        offset: int = 0,
        base: Optional["Buffer"] = None,
    ) -> None:
        if real.ndim != 1:
            raise ValueError(f"storage plane must be 1-D, got ndim={real.ndim}")
        if imag is not None and (imag.shape != real.shape or imag.dtype != real.dtype):
            raise ValueError("real and imaginary planes must match in length and dtype")

        dims = tuple(int(d) for d in dims)
        strides = tuple(int(s) for s in strides)
        if len(dims) != len(strides):
            raise ValueError(f"len(dims) != len(strides): {dims} vs {strides}")

        size = 1
        for d in dims:
            size *= d
        if size:
            last = offset + sum((d - 1) * s for d, s in zip(dims, strides))
            if offset < 0 or last >= real.shape[0]:
                raise ValueError(
                    f"geometry dims={dims} strides={strides} offset={offset} "
                    f"exceeds storage of length {real.shape[0]}"
                )

        self._real = real
        self._imag = imag
        self._dims = dims
        self._strides = strides
        self._offset = int(offset)
        self._base = base

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def allocate(
        cls, dims: Sequence[int], dtype, *, complex_: bool = False
    ) -> "Buffer":
        """
        Allocate a zero-filled, owned, row-major buffer.

        Parameters
        ----------
        dims : Sequence[int]
            Dimension sizes.
        dtype : numpy dtype-like
            Real dtype of each plane.
        complex_ : bool, optional
            Allocate an imaginary plane as well. Defaults to False.
        """
        dims = tuple(int(d) for d in dims)
        n = 1
        for d in dims:
            n *= d
        real = np.zeros(max(n, 1), dtype=dtype)
        imag = np.zeros(max(n, 1), dtype=dtype) if complex_ else None
        return cls(real, imag, dims, contiguous_strides(dims))

    @classmethod
    def from_numpy(cls, arr, *, dtype=None) -> "Buffer":
        """
        Copy an array-like into a new owned row-major buffer.

        Complex inputs are split into separate real and imaginary planes.

        Parameters
        ----------
        arr : array-like
            Source values.
        dtype : numpy dtype-like, optional
            Real dtype of the planes. Defaults to the real dtype of `arr`
            (float64 for integer / bool input).
        """
        a = np.asarray(arr)
        is_complex = np.iscomplexobj(a)
        if dtype is None:
            if is_complex:
                dtype = a.real.dtype
            elif a.dtype.kind == "f":
                dtype = a.dtype
            else:
                dtype = np.float64
        dtype = np.dtype(dtype)

        out = cls.allocate(a.shape, dtype, complex_=is_complex)
        out._real[: a.size] = np.ascontiguousarray(a.real if is_complex else a, dtype=dtype).reshape(-1)
        if is_complex:
            out._imag[: a.size] = np.ascontiguousarray(a.imag, dtype=dtype).reshape(-1)
        return out

    def view(
        self, dims: Sequence[int], strides: Sequence[int], offset: Optional[int] = None
    ) -> "Buffer":
        """
        Create a read-only buffer sharing this buffer's planes.

        Parameters
        ----------
        dims : Sequence[int]
            Dimension sizes of the view.
        strides : Sequence[int]
            Element strides of the view (0 for broadcast dimensions).
        offset : Optional[int], optional
            Element offset; defaults to this buffer's offset.
        """
        return Buffer(
            self._real,
            self._imag,
            dims,
            strides,
            self._offset if offset is None else offset,
            base=self._base if self._base is not None else self,
        )

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    @property
    def dims(self) -> Tuple[int, ...]:
        return self._dims

    @property
    def strides(self) -> Tuple[int, ...]:
        return self._strides

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def dtype(self) -> np.dtype:
        return self._real.dtype

    @property
    def is_complex(self) -> bool:
        return self._imag is not None

    @property
    def owns_storage(self) -> bool:
        return self._base is None

    @property
    def size(self) -> int:
        n = 1
        for d in self._dims:
            n *= d
        return n

    @property
    def is_contiguous(self) -> bool:
        expected = contiguous_strides(self._dims)
        return self._offset == 0 and all(
            d == 1 or s == e for d, s, e in zip(self._dims, self._strides, expected)
        )

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------
    @property
    def real_storage(self) -> np.ndarray:
        """Flat real plane (shared with views)."""
        return self._real

    @property
    def imag_storage(self) -> Optional[np.ndarray]:
        """Flat imaginary plane, or None."""
        return self._imag

    def _strided(self, plane: np.ndarray) -> np.ndarray:
        item = plane.itemsize
        out = as_strided(
            plane[self._offset :],
            shape=self._dims,
            strides=tuple(s * item for s in self._strides),
            writeable=self.owns_storage,
        )
        return out

    def real_view(self) -> np.ndarray:
        """Strided NumPy view of the real plane (read-only for views)."""
        return self._strided(self._real)

    def imag_view(self) -> Optional[np.ndarray]:
        """Strided NumPy view of the imaginary plane, or None."""
        return None if self._imag is None else self._strided(self._imag)

    def real_flat(self) -> np.ndarray:
        """
        Flat, row-major real values.

        For contiguous buffers this is a slice of the storage plane (writable
        when owned); otherwise a copy.
        """
        if self.is_contiguous:
            return self._real[: self.size]
        return np.ascontiguousarray(self.real_view()).reshape(-1)

    def imag_flat(self) -> Optional[np.ndarray]:
        """Flat, row-major imaginary values, or None."""
        if self._imag is None:
            return None
        if self.is_contiguous:
            return self._imag[: self.size]
        return np.ascontiguousarray(self.imag_view()).reshape(-1)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------
    def make_contiguous(self) -> "Buffer":
        """
        Return a row-major buffer with the same values.

        Returns `self` when the buffer is already contiguous; otherwise copies
        the strided values into a newly owned row-major buffer.
        """
        if self.is_contiguous:
            return self
        out = Buffer.allocate(self._dims, self.dtype, complex_=self.is_complex)
        out._real[: self.size] = self.real_flat()
        if self._imag is not None:
            out._imag[: self.size] = self.imag_flat()
        return out

    def to_numpy(self) -> np.ndarray:
        """
        Copy the values into a standalone NumPy array of shape `dims`
        (complex dtype when an imaginary plane is present).
        """
        re = np.array(self.real_view(), copy=True)
        if self._imag is None:
            return re
        return re + 1j * np.array(self.imag_view(), copy=True)

    def __repr__(self) -> str:
        return (
            f"Buffer(dims={self._dims}, strides={self._strides}, offset={self._offset}, "
            f"dtype={self.dtype}, complex={self.is_complex}, owns={self.owns_storage})"
        )
