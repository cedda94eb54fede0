"""
NumPy-backed array node.

`Array` is the concrete graph node of the operation framework. It is created
either as a *leaf* (user data, already materialized) or by the harness
(`apply`) as the output of an operation, in which case only its shape is
known until it is materialized.

Nodes reference their operands without owning them exclusively: the same
node may be an operand of many consumers, and Python's reference counting
keeps it alive for as long as any consumer or user binding holds it.

Every node receives a monotonically increasing `node_id`. Because a node can
only be constructed from already-existing operands, operand ids are always
smaller than consumer ids; sorting by id is a topological order.
"""

from __future__ import annotations

import itertools
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

from ..domain._array_shape import ArrayShape
from ..domain._errors import ExecutionError
from ..domain._node_state import NodeState
from ._config import get_config
from .storage._buffer import Buffer

Number = Union[int, float, complex]


def _resolve_dtype(dtype) -> np.dtype:
    if dtype is None:
        return get_config().default_dtype
    dt = np.dtype(dtype)
    if dt.kind != "f":
        raise ValueError(f"array dtype must be a real floating dtype, got {dt}")
    return dt


class Array:
    """
    A node in the computation graph.

    Parameters
    ----------
    shape : ArrayShape
        Output geometry of the node.
    dtype : numpy dtype-like
        Real dtype of the value planes.
    operands : Sequence[Array], optional
        Operand nodes (empty for leaves).
    op : Operation, optional
        Descriptor that produced the node (None for leaves).
    buffer : Buffer, optional
        Values, for leaves. Nodes produced by operations start without one.
    requires_complex : bool, optional
        Whether values carry an imaginary plane.

    Notes
    -----
    End users build leaves through `Array.from_numpy`, `Array.constant`,
    `Array.zeros` and `Array.ones`; operation nodes are built by the harness.
    """

    _ids = itertools.count()

    def __init__(
        self,
        shape: ArrayShape,
        dtype,
        *,
        operands: Sequence["Array"] = (),
        op: Optional[Any] = None,
        buffer: Optional[Buffer] = None,
        requires_complex: bool = False,
    ) -> None:
        if op is None and buffer is None:
            raise ValueError("leaf arrays must be constructed with a buffer")

        self._shape = shape
        self._dtype = np.dtype(dtype)
        self._operands: Tuple[Array, ...] = tuple(operands)
        self._op = op
        self._requires_complex = bool(requires_complex)
        self._buffer: Optional[Buffer] = None
        self._state = NodeState.SHAPE_ONLY
        self._failure: Optional[BaseException] = None
        self._node_id = next(Array._ids)

        if buffer is not None:
            self._bind_buffer(buffer)
            self._state = NodeState.MATERIALIZED

    # ------------------------------------------------------------------
    # Leaf factories
    # ------------------------------------------------------------------
    @classmethod
    def from_numpy(cls, arr: Any, *, dtype=None) -> "Array":
        """
        Build a materialized leaf from array-like data (copied).

        Parameters
        ----------
        arr : array-like
            Real or complex values. Complex input produces a node with
            `requires_complex=True`.
        dtype : numpy dtype-like, optional
            Real floating dtype of the planes. Floating NumPy arrays keep
            their dtype; anything else defaults to the configured
            `default_dtype`.

        Raises
        ------
        ValueError
            If `dtype` is not a real floating dtype.
        """
        a = np.asarray(arr)
        if dtype is None and a.dtype.kind in "fc" and isinstance(arr, np.ndarray):
            dtype = a.real.dtype
        else:
            dtype = _resolve_dtype(dtype)
        buf = Buffer.from_numpy(a, dtype=dtype)
        return cls(
            ArrayShape.contiguous(buf.dims),
            buf.dtype,
            buffer=buf,
            requires_complex=buf.is_complex,
        )

    @classmethod
    def constant(cls, value: Number, *, dtype=None) -> "Array":
        """Build a 0-d leaf holding a Python scalar."""
        return cls.from_numpy(np.asarray(value), dtype=_resolve_dtype(dtype))

    @classmethod
    def zeros(cls, dims: Sequence[int], *, dtype=None, complex_: bool = False) -> "Array":
        buf = Buffer.allocate(dims, _resolve_dtype(dtype), complex_=complex_)
        return cls(
            ArrayShape.contiguous(buf.dims), buf.dtype, buffer=buf, requires_complex=complex_
        )

    @classmethod
    def ones(cls, dims: Sequence[int], *, dtype=None) -> "Array":
        dtype = _resolve_dtype(dtype)
        return cls.from_numpy(np.ones(tuple(dims), dtype=dtype), dtype=dtype)

    @classmethod
    def zeros_like(cls, other: "Array") -> "Array":
        return cls.zeros(other.dims, dtype=other.dtype, complex_=other.requires_complex)

    @classmethod
    def ones_like(cls, other: "Array") -> "Array":
        return cls.ones(other.dims, dtype=other.dtype)

    @staticmethod
    def _as_array(x: Union["Array", Number, Any], like: "Array") -> "Array":
        """
        Convert a scalar or array-like operand to an `Array` with `like`'s dtype.
        """
        if isinstance(x, Array):
            return x
        return Array.from_numpy(np.asarray(x), dtype=like.dtype)

    # ------------------------------------------------------------------
    # Node metadata
    # ------------------------------------------------------------------
    @property
    def shape(self) -> ArrayShape:
        return self._shape

    @property
    def dims(self) -> Tuple[int, ...]:
        return self._shape.dims

    @property
    def ndim(self) -> int:
        return self._shape.ndim

    @property
    def size(self) -> int:
        return self._shape.size

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def operands(self) -> Tuple["Array", ...]:
        return self._operands

    @property
    def op(self) -> Optional[Any]:
        return self._op

    @property
    def requires_complex(self) -> bool:
        return self._requires_complex

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def node_id(self) -> int:
        return self._node_id

    @property
    def is_leaf(self) -> bool:
        return self._op is None

    @property
    def failure(self) -> Optional[BaseException]:
        """The exception that poisoned this node, if any."""
        return self._failure

    # ------------------------------------------------------------------
    # Buffer lifecycle (used by the harness and view operations)
    # ------------------------------------------------------------------
    def _bind_buffer(self, buffer: Buffer) -> None:
        """
        Attach a buffer whose geometry matches this node's dims.

        Raises
        ------
        ExecutionError
            If the buffer dims, dtype or complexity disagree with the node.
        """
        name = self._op.name if self._op is not None else "leaf"
        if buffer.dims != self.dims:
            raise ExecutionError(
                name, f"buffer dims {buffer.dims} do not match node dims {self.dims}"
            )
        if buffer.is_complex != self._requires_complex:
            raise ExecutionError(
                name,
                f"buffer complex={buffer.is_complex} but node "
                f"requires_complex={self._requires_complex}",
            )
        if buffer.dtype != self._dtype:
            raise ExecutionError(
                name, f"buffer dtype {buffer.dtype} does not match node dtype {self._dtype}"
            )
        if buffer.strides != self._shape.strides:
            raise ExecutionError(
                name,
                f"buffer strides {buffer.strides} do not match node strides "
                f"{self._shape.strides}",
            )
        self._buffer = buffer

    @property
    def raw_buffer(self) -> Optional[Buffer]:
        """
        The bound buffer without triggering materialization.

        Forward kernels use this to reach the output buffer of the node they
        are materializing. None until a buffer is bound.
        """
        return self._buffer

    def _set_state(self, state: NodeState) -> None:
        self._state = state

    def _poison(self, failure: BaseException) -> None:
        self._buffer = None
        self._failure = failure
        self._state = NodeState.POISONED

    @property
    def buffer(self) -> Buffer:
        """
        The node's values, materializing them first if needed.

        Raises
        ------
        PoisonedNodeError
            If materialization of this node failed earlier.
        """
        self.materialize()
        return self._buffer  # type: ignore[return-value]

    def materialize(self) -> "Array":
        """
        Run forward execution for this node (and pending operands) once.

        Returns `self`. Subsequent calls return immediately.
        """
        from ._harness import materialize

        return materialize(self)

    def to_numpy(self) -> np.ndarray:
        """Materialize and copy the values into a NumPy array."""
        return self.buffer.to_numpy()

    def item(self) -> Number:
        """
        Return the single value of a one-element array as a Python scalar.

        Raises
        ------
        ValueError
            If the array has more than one element.
        """
        if self.size != 1:
            raise ValueError(f"item() requires a single-element array, got dims={self.dims}")
        return self.to_numpy().reshape(()).item()

    def __repr__(self) -> str:
        op = self._op.name if self._op is not None else "leaf"
        return (
            f"Array(#{self._node_id}, op={op}, dims={self.dims}, dtype={self._dtype}, "
            f"complex={self._requires_complex}, state={self._state.value})"
        )

    # ------------------------------------------------------------------
    # Operator sugar (routed through the harness)
    # ------------------------------------------------------------------
    def __add__(self, other: Union["Array", Number]) -> "Array":
        from ._functional import add

        return add(self, Array._as_array(other, self))

    def __radd__(self, other: Number) -> "Array":
        from ._functional import add

        return add(Array._as_array(other, self), self)

    def __sub__(self, other: Union["Array", Number]) -> "Array":
        from ._functional import sub

        return sub(self, Array._as_array(other, self))

    def __rsub__(self, other: Number) -> "Array":
        from ._functional import sub

        return sub(Array._as_array(other, self), self)

    def __mul__(self, other: Union["Array", Number]) -> "Array":
        from ._functional import mul

        return mul(self, Array._as_array(other, self))

    def __rmul__(self, other: Number) -> "Array":
        from ._functional import mul

        return mul(Array._as_array(other, self), self)

    def __truediv__(self, other: Union["Array", Number]) -> "Array":
        from ._functional import div

        return div(self, Array._as_array(other, self))

    def __rtruediv__(self, other: Number) -> "Array":
        from ._functional import div

        return div(Array._as_array(other, self), self)

    def __neg__(self) -> "Array":
        from ._functional import neg

        return neg(self)

    def __pow__(self, exponent: float) -> "Array":
        from ._functional import pow_scalar

        return pow_scalar(self, exponent)

    @property
    def T(self) -> "Array":
        """Axis-reversing transpose (a strided view)."""
        from ._functional import transpose

        return transpose(self)

    def transpose(self, *axes: int) -> "Array":
        from ._functional import transpose

        return transpose(self, axes or None)

    def reshape(self, *dims: int) -> "Array":
        from ._functional import reshape

        if len(dims) == 1 and isinstance(dims[0], (tuple, list)):
            dims = tuple(dims[0])
        return reshape(self, dims)

    def broadcast_to(self, dims: Sequence[int]) -> "Array":
        from ._functional import broadcast_to

        return broadcast_to(self, dims)

    def sum(self, axis=None, keepdims: bool = False) -> "Array":
        from ._functional import sum as sum_

        return sum_(self, axis=axis, keepdims=keepdims)

    def exp(self) -> "Array":
        from ._functional import exp

        return exp(self)

    def log(self) -> "Array":
        from ._functional import log

        return log(self)
