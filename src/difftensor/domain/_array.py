"""
Array node interface definitions.

This module defines the domain-level interface for graph nodes using
structural typing. Domain code (the operation protocol, default derivative
rules) types against `IArray` so it never depends on the NumPy-backed
infrastructure implementation.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from ._array_shape import ArrayShape
from ._node_state import NodeState


@runtime_checkable
class IArray(Protocol):
    """
    Array node interface.

    An `IArray` is a node in a directed acyclic graph: it knows its output
    geometry immediately, references its operands (shared, never owned
    exclusively), and holds values once materialized.
    """

    @property
    def shape(self) -> ArrayShape:
        """
        Return the node's output geometry.

        Returns
        -------
        ArrayShape
            Dims, strides and operation parameters of this node.
        """
        ...

    @property
    def dims(self) -> tuple[int, ...]:
        """Shortcut for `shape.dims`."""
        ...

    @property
    def operands(self) -> Sequence["IArray"]:
        """Operand nodes this node was computed from (empty for leaves)."""
        ...

    @property
    def op(self) -> Optional[Any]:
        """The operation descriptor that produced this node, or None for leaves."""
        ...

    @property
    def requires_complex(self) -> bool:
        """Whether this node's values carry an imaginary plane."""
        ...

    @property
    def state(self) -> NodeState:
        """Current lifecycle state."""
        ...

    @property
    def node_id(self) -> int:
        """
        Monotonic node handle.

        Operands always have a smaller id than their consumers, so sorting by
        id yields a topological order.
        """
        ...

    def materialize(self) -> "IArray":
        """
        Ensure this node's values are computed.

        Returns
        -------
        IArray
            `self`, for chaining.

        Raises
        ------
        PoisonedNodeError
            If an earlier materialization of this node failed.
        """
        ...

    def to_numpy(self) -> Any:
        """
        Materialize and return the values as a NumPy array (complex dtype when
        `requires_complex` is True).
        """
        ...
