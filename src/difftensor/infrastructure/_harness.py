"""
Op-application harness.

This module is the generic driver every operation goes through:

- `apply(op, operands, params)` validates operands, runs (memoized) shape
  inference, and constructs a new graph node referencing the operands. No
  data is copied and, under the default lazy policy, nothing is computed.
- `materialize(node)` runs forward execution exactly once per node, after
  materializing pending operands in dependency order.

Failure semantics
-----------------
- Construction is all-or-nothing: if operand validation or shape inference
  fails, the error propagates and no node is returned.
- If forward execution fails, the node is *poisoned*: its buffer is dropped
  and every later read raises `PoisonedNodeError` chained to the original
  failure. The original failure itself propagates unchanged from the
  materialize call that hit it.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from ..domain._array_shape import ArrayShape
from ..domain._errors import (
    ExecutionError,
    InvalidParameterError,
    PoisonedNodeError,
    UnsupportedOperandKindError,
)
from ..domain._node_state import NodeState
from ..domain._operation import Operation
from ._array import Array
from ._config import get_config
from .storage._buffer import Buffer

logger = logging.getLogger(__name__)


class ShapeCache:
    """
    Bounded LRU memo of shape-inference results.

    Keys are ``(op, operand_shapes, params)`` plus the param types, so that
    e.g. ``True`` and ``1`` do not share an entry. Shape inference is pure, so
    a cached ArrayShape is returned for identical inputs; failures are never
    cached.

    Attributes
    ----------
    hits : int
        Number of lookups served from the cache.
    misses : int
        Number of lookups that invoked `Operation.infer_shape`.
    """

    def __init__(self) -> None:
        self._entries: "OrderedDict[Tuple[Any, ...], ArrayShape]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def infer(
        self,
        op: Operation,
        operand_shapes: Tuple[ArrayShape, ...],
        params: Tuple[Any, ...],
    ) -> ArrayShape:
        key = (op, operand_shapes, params, tuple(type(p) for p in params))
        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            self.hits += 1
            return cached

        self.misses += 1
        shape = op.infer_shape(operand_shapes, params)
        if not isinstance(shape, ArrayShape):
            raise TypeError(
                f"{op.name}.infer_shape must return ArrayShape, got {type(shape)!r}"
            )
        logger.debug(
            "shape inference %s%s params=%s -> dims=%s strides=%s",
            op.name,
            tuple(s.dims for s in operand_shapes),
            params,
            shape.dims,
            shape.strides,
        )

        self._entries[key] = shape
        capacity = get_config().shape_cache_size
        while len(self._entries) > capacity:
            self._entries.popitem(last=False)
        return shape

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)


shape_cache = ShapeCache()
"""ShapeCache: process-wide shape-inference memo used by `apply`."""


def _normalize_params(op: Operation, params: Sequence[Any]) -> Tuple[Any, ...]:
    params = tuple(params)
    try:
        hash(params)
    except TypeError:
        raise InvalidParameterError(
            op.name, f"params must be hashable scalars, got {params!r}"
        ) from None
    return params


def apply(op: Operation, operands: Sequence[Array], params: Sequence[Any] = ()) -> Array:
    """
    Apply an operation to operand nodes, producing a new node.

    Parameters
    ----------
    op : Operation
        Shared operation descriptor.
    operands : Sequence[Array]
        Operand nodes, in the order the operation expects.
    params : Sequence, optional
        Operation-specific scalar parameters. Defaults to ().

    Returns
    -------
    Array
        The new node. Its shape is known; its values are computed lazily on
        first read, or immediately when the configured execution policy is
        "eager".

    Raises
    ------
    TypeError
        If `op` is not an `Operation` or an operand is not an `Array`.
    UnsupportedOperandKindError
        If a complex operand is given to an operation without complex support.
    ShapeMismatchError
        If shape inference rejects the operands or parameters.
    ExecutionError
        Under the eager policy, if forward execution fails.
    """
    if not isinstance(op, Operation):
        raise TypeError(f"apply expects an Operation, got {type(op)!r}")
    operands = tuple(operands)
    for i, o in enumerate(operands):
        if not isinstance(o, Array):
            raise TypeError(
                f"{op.name}: operand {i} must be an Array, got {type(o)!r}"
            )

    if not op.supports_complex and any(o.requires_complex for o in operands):
        raise UnsupportedOperandKindError(op.name, "complex")

    params = _normalize_params(op, params)
    shape = shape_cache.infer(op, tuple(o.shape for o in operands), params)

    dtype = (
        np.result_type(*(o.dtype for o in operands))
        if operands
        else get_config().default_dtype
    )
    node = Array(
        shape,
        dtype,
        operands=operands,
        op=op,
        requires_complex=op.result_is_complex([o.requires_complex for o in operands]),
    )

    if get_config().execution == "eager":
        materialize(node)
    return node


def _poisoned_error(node: Array) -> PoisonedNodeError:
    err = PoisonedNodeError(node.op.name, node.node_id, node.failure)
    err.__cause__ = node.failure
    return err


def _pending(root: Array) -> List[Array]:
    """
    Collect `root` and every unmaterialized ancestor, in dependency order.

    The walk is an iterative depth-first search (no recursion limit); the
    collected nodes are ordered by `node_id`, which is topological.

    Raises
    ------
    PoisonedNodeError
        If any node on the way is poisoned.
    ExecutionError
        If a node is already being materialized (re-entrant demand).
    """
    seen: Dict[int, Array] = {}
    stack = [root]
    while stack:
        node = stack.pop()
        if node.node_id in seen:
            continue
        if node.state is NodeState.MATERIALIZED:
            continue
        if node.state is NodeState.POISONED:
            raise _poisoned_error(node)
        if node.state is NodeState.MATERIALIZING:
            raise ExecutionError(
                node.op.name,
                f"node #{node.node_id} was demanded while it is being materialized",
            )
        seen[node.node_id] = node
        stack.extend(node.operands)
    return [seen[k] for k in sorted(seen)]


def _execute(node: Array) -> None:
    op = node.op
    node._set_state(NodeState.MATERIALIZING)
    try:
        if op.allocates_output:
            node._bind_buffer(
                Buffer.allocate(node.dims, node.dtype, complex_=node.requires_complex)
            )
        op.forward(node, node.operands)
        if node._buffer is None:
            raise ExecutionError(op.name, "forward did not bind an output buffer")
    except Exception as exc:
        node._poison(exc)
        logger.warning(
            "materialization of node #%d (%s) failed: %s: %s",
            node.node_id,
            op.name,
            type(exc).__name__,
            exc,
        )
        raise
    node._set_state(NodeState.MATERIALIZED)
    logger.debug("materialized node #%d (%s) dims=%s", node.node_id, op.name, node.dims)


def materialize(node: Array) -> Array:
    """
    Ensure `node` holds computed values.

    Pending operands are materialized first (each at most once). Calling this
    on an already-materialized node returns immediately without re-executing
    any kernel.

    Parameters
    ----------
    node : Array
        Node to materialize.

    Returns
    -------
    Array
        `node`.

    Raises
    ------
    PoisonedNodeError
        If `node` or one of its ancestors is poisoned.
    ExecutionError, UnsupportedOperandKindError
        As raised by a forward kernel; the failing node becomes poisoned.
    """
    if node.state is NodeState.MATERIALIZED:
        return node
    for pending in _pending(node):
        _execute(pending)
    return node
