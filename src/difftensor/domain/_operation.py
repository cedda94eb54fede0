"""
Operation protocol definitions.

This module defines the abstract base class every tensor operation
implements. An `Operation` is a stateless descriptor bundling four
protocols:

- shape inference (`infer_shape`),
- forward execution (`forward`),
- forward-mode differentiation (`jvp`),
- reverse-mode differentiation (`vjp`).

A single instance is shared by all nodes produced by that operation; any
per-node scalar parameters live in the node's `ArrayShape.params`.

Derivative rules are expressed by applying *other* operations of the same
framework, so the arrays they return are graph nodes and can themselves be
differentiated.

Non-differentiable positions
----------------------------
Rules report "no gradient flows through this operand position" with the
`NO_GRADIENT` sentinel rather than a zero-valued array, so callers can
distinguish a legitimately zero gradient from a non-differentiable position.
`default_jvp` / `default_vjp` implement the all-positions-non-differentiable
policy and are the fallback for operations without a custom rule.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence, Tuple, Union

from ._array import IArray
from ._array_shape import ArrayShape


class NoGradient:
    """
    Sentinel type marking an operand position through which no derivative
    flows.

    Notes
    -----
    There is a single instance, `NO_GRADIENT`. It is falsy so rules can write
    `if tangent:` checks, and it never participates in arithmetic.
    """

    _instance = None

    def __new__(cls) -> "NoGradient":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_GRADIENT"

    def __reduce__(self):
        return (NoGradient, ())


NO_GRADIENT = NoGradient()

MaybeArray = Union[IArray, NoGradient]


def default_jvp(
    primals: Sequence[IArray], tangents: Sequence[MaybeArray], output: IArray
) -> MaybeArray:
    """
    Fallback JVP rule: the output carries no tangent.

    Used by operations whose output is piecewise constant in every operand
    (e.g. `sign`) or whose operands are parameter-only.
    """
    return NO_GRADIENT


def default_vjp(
    primals: Sequence[IArray], grad_output: IArray, output: IArray
) -> Tuple[MaybeArray, ...]:
    """
    Fallback VJP rule: no gradient flows to any operand position.

    Returns one `NO_GRADIENT` entry per primal so the protocol stays total.
    """
    return tuple(NO_GRADIENT for _ in primals)


class Operation(ABC):
    """
    Abstract base class for tensor operations.

    Subclasses set `name` and implement `infer_shape` and `forward`. They
    override `jvp` / `vjp` when the operation is differentiable; otherwise the
    inherited rules report `NO_GRADIENT` for every position.

    Class attributes
    ----------------
    name : str
        Unique identifier, also stored as `ArrayShape.op_name`.
    supports_complex : bool
        Whether forward execution implements complex operands. The harness
        rejects complex operands for ops where this is False, before any node
        or buffer is created.
    allocates_output : bool
        When True (default), the harness allocates a fresh contiguous output
        buffer before calling `forward`. View operations set this to False and
        bind a strided view of an operand's buffer instead.
    """

    name: str = ""
    supports_complex: bool = False
    allocates_output: bool = True

    @abstractmethod
    def infer_shape(
        self, operand_shapes: Sequence[ArrayShape], params: Tuple[Any, ...]
    ) -> ArrayShape:
        """
        Infer the output geometry from operand geometries and parameters.

        Must be a pure function of its arguments; the harness memoizes it.

        Parameters
        ----------
        operand_shapes : Sequence[ArrayShape]
            Geometry of each operand, in order.
        params : tuple
            Operation-specific scalar parameters (hashable).

        Returns
        -------
        ArrayShape
            The output geometry, with `op_name == self.name` and the
            (normalized) params recorded.

        Raises
        ------
        ShapeMismatchError
            If operand ranks, dimensions or parameters are incompatible.
        """
        ...

    @abstractmethod
    def forward(self, output: IArray, operands: Sequence[IArray]) -> None:
        """
        Compute the output values from materialized operands.

        Parameters
        ----------
        output : IArray
            The node being materialized. Its buffer has been allocated by the
            harness unless `allocates_output` is False.
        operands : Sequence[IArray]
            Materialized operand nodes.

        Raises
        ------
        ExecutionError
            If execution fails; the harness poisons `output`.
        """
        ...

    def jvp(
        self,
        primals: Sequence[IArray],
        tangents: Sequence[MaybeArray],
        output: IArray,
    ) -> MaybeArray:
        """
        Forward-mode rule: directional derivative of the output.

        Parameters
        ----------
        primals : Sequence[IArray]
            The operand nodes.
        tangents : Sequence[IArray | NoGradient]
            One tangent per operand; `NO_GRADIENT` where no tangent flows.
        output : IArray
            The forward output node (carries `shape.params`).

        Returns
        -------
        IArray or NoGradient
            Output tangent with the output's dims, or `NO_GRADIENT`.
        """
        return default_jvp(primals, tangents, output)

    def vjp(
        self, primals: Sequence[IArray], grad_output: IArray, output: IArray
    ) -> Tuple[MaybeArray, ...]:
        """
        Reverse-mode rule: gradients for each operand position.

        Parameters
        ----------
        primals : Sequence[IArray]
            The operand nodes.
        grad_output : IArray
            Gradient with respect to `output` (same dims).
        output : IArray
            The forward output node.

        Returns
        -------
        tuple[IArray | NoGradient, ...]
            Exactly one entry per primal, each with that primal's dims or
            `NO_GRADIENT`.
        """
        return default_vjp(primals, grad_output, output)

    def result_is_complex(self, operand_flags: Sequence[bool]) -> bool:
        """Whether the output carries an imaginary plane, given operand flags."""
        return any(operand_flags)

    def __repr__(self) -> str:
        return f"<Operation {self.name}>"
