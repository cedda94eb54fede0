"""
Shape-, operand- and execution-related exceptions for difftensor.

This module defines the error taxonomy raised by the operation framework.
Every error is synchronous and surfaced to the immediate caller of
`apply` / `materialize`; nothing in the framework catches and suppresses
these errors, and derivative correctness relies on failing fast.

- `ShapeMismatchError`: raised by shape inference, before any allocation.
- `UnsupportedOperandKindError`: e.g. complex operands to a real-only op.
- `ExecutionError`: raised mid-kernel, during forward execution.
- `PoisonedNodeError`: raised when reading a node whose forward failed.
"""

from typing import Optional


class DiffTensorError(RuntimeError):
    """Base class for all errors raised by the operation framework."""


class ShapeMismatchError(DiffTensorError, ValueError):
    """
    Raised when operand shapes (or parameters) violate an operation's
    shape-inference constraints.

    Attributes
    ----------
    op : str
        Name of the operation whose shape inference failed.
    constraint : str
        Human-readable description of the violated constraint.
    """

    def __init__(self, op: str, constraint: str) -> None:
        """
        Initialize the ShapeMismatchError.

        Parameters
        ----------
        op : str
            The operation name (e.g., "conv1d", "add").
        constraint : str
            Description of the violated constraint.
        """
        super().__init__(f"{op}: {constraint}")
        self.op = op
        self.constraint = constraint


class InvalidParameterError(ShapeMismatchError):
    """
    Raised when an operation's scalar parameters are invalid
    (e.g., a convolution stride of 0).
    """


class UnsupportedOperandKindError(DiffTensorError, TypeError):
    """
    Raised when an operation receives an operand kind it does not implement,
    typically a complex-valued operand for a real-only operation.

    Attributes
    ----------
    op : str
        Name of the operation.
    kind : str
        The rejected operand kind (e.g., "complex").
    """

    def __init__(self, op: str, kind: str) -> None:
        super().__init__(f"{op} does not support {kind} operands.")
        self.op = op
        self.kind = kind


class ExecutionError(DiffTensorError):
    """
    Raised when a forward kernel fails during execution.

    Attributes
    ----------
    op : str
        Name of the operation whose kernel failed.
    """

    def __init__(self, op: str, message: str) -> None:
        super().__init__(f"{op}: {message}")
        self.op = op


class PoisonedNodeError(ExecutionError):
    """
    Raised when reading a node whose materialization previously failed.

    The original failure is attached as `__cause__` by the harness, and is
    also available as `failure`.

    Attributes
    ----------
    node_id : int
        Handle of the poisoned node.
    failure : Optional[BaseException]
        The exception that poisoned the node.
    """

    def __init__(
        self, op: str, node_id: int, failure: Optional[BaseException] = None
    ) -> None:
        super().__init__(
            op,
            f"node #{node_id} is poisoned by an earlier failed materialization"
            + (f" ({type(failure).__name__}: {failure})" if failure else ""),
        )
        self.node_id = node_id
        self.failure = failure
