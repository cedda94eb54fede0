"""
Forward- and reverse-mode differentiation drivers.

The drivers call a user function on its input nodes, then walk the resulting graph and apply each node's `Operation.jvp` /
`Operation.vjp` rule:

- forward mode visits nodes in ascending `node_id` (dependency order) and
  pushes tangents from operands to outputs,
- reverse mode visits the *active* nodes (those on a path from an input to
  the output) in descending `node_id` and accumulates cotangents with `add`.

Rules are composed of registered operations, so tangents and gradients are
lazy graph nodes themselves and can be differentiated again (``grad`` of
``grad`` works).

`NO_GRADIENT` is kept distinct from zero while propagating; only the
user-facing results turn a missing derivative into zeros.

Complex values follow the non-conjugating convention: the VJP of a
holomorphic function applies the plain (unconjugated) transpose of its JVP.
A complex cotangent reaching a real-valued operand is projected onto its
real part.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Sequence, Tuple, Union

from ..domain._errors import ShapeMismatchError
from ..domain._operation import NO_GRADIENT, MaybeArray
from ._array import Array

logger = logging.getLogger(__name__)

ArgNums = Union[int, Sequence[int]]


# ---------------------------------------------------------------------------
# Pass-through rules
# ---------------------------------------------------------------------------
def passthrough_jvp(primals, tangents, output) -> MaybeArray:
    """
    JVP rule for operations whose output is the (broadcast) sum of their
    operands: the output tangent is the sum of the operand tangents, each
    broadcast to the output dims.
    """
    from ._functional import add, broadcast_to

    out: MaybeArray = NO_GRADIENT
    for t in tangents:
        if t is NO_GRADIENT:
            continue
        if t.dims != output.dims:
            t = broadcast_to(t, output.dims)
        out = t if out is NO_GRADIENT else add(out, t)
    return out


def passthrough_vjp(primals, grad_output, output) -> Tuple[MaybeArray, ...]:
    """
    VJP rule forwarding the output cotangent to every operand, reduced with
    `sum_to_shape` where the operand was broadcast.
    """
    from ._functional import sum_to_shape

    return tuple(sum_to_shape(grad_output, p.dims) for p in primals)


# ---------------------------------------------------------------------------
# Tracing helpers
# ---------------------------------------------------------------------------
def _as_inputs(values: Sequence[Any]) -> List[Array]:
    """
    Convert arguments to input nodes.

    Arrays are used as they are, so derivatives taken inside an outer
    differentiation stay connected to the outer graph. An Array passed twice
    is replaced by a leaf copy the second time, so each position gets its own
    derivative.
    """
    inputs: List[Array] = []
    seen = set()
    for x in values:
        if not isinstance(x, Array):
            x = Array.from_numpy(x)
        elif x.node_id in seen:
            x = Array(x.shape, x.dtype, buffer=x.buffer, requires_complex=x.requires_complex)
        seen.add(x.node_id)
        inputs.append(x)
    return inputs


def _trace(fn: Callable[..., Array], inputs: Sequence[Array]) -> Array:
    out = fn(*inputs)
    if not isinstance(out, Array):
        raise TypeError(f"differentiated function must return an Array, got {type(out)!r}")
    return out


def _ancestors(root: Array, inputs: Sequence[Array]) -> List[Array]:
    """
    Nodes reachable from `root` through operands, in ascending id. The walk
    does not continue past `inputs`.
    """
    stop = {x.node_id for x in inputs}
    seen: Dict[int, Array] = {}
    stack = [root]
    while stack:
        node = stack.pop()
        if node.node_id in seen:
            continue
        seen[node.node_id] = node
        if node.node_id not in stop:
            stack.extend(node.operands)
    return [seen[k] for k in sorted(seen)]


def _check_dims(op_name: str, what: str, value: Array, dims: Tuple[int, ...]) -> None:
    if value.dims != dims:
        raise ShapeMismatchError(op_name, f"{what} has dims {value.dims}, expected {dims}")


def _zeros_for(x: Array) -> Array:
    return Array.zeros(x.dims, dtype=x.dtype, complex_=x.requires_complex)


def _normalize_argnums(argnums: ArgNums, n: int) -> Tuple[Tuple[int, ...], bool]:
    single = isinstance(argnums, int)
    nums = (argnums,) if single else tuple(argnums)
    for i in nums:
        if not -n <= i < n:
            raise ValueError(f"argnums {argnums!r} out of range for {n} argument(s)")
    return tuple(i % n for i in nums), single


# ---------------------------------------------------------------------------
# Forward mode
# ---------------------------------------------------------------------------
def jvp(
    fn: Callable[..., Array], primals: Sequence[Any], tangents: Sequence[Any]
) -> Tuple[Array, Array]:
    """
    Evaluate `fn` and its directional derivative.

    Parameters
    ----------
    fn : Callable[..., Array]
        Function of Arrays built from framework operations.
    primals : Sequence[Array | array-like]
        Point at which to differentiate.
    tangents : Sequence[Array | array-like]
        One direction per primal, with matching dims.

    Returns
    -------
    (Array, Array)
        ``fn(*primals)`` and the output tangent (zeros when no tangent
        reaches the output).

    Raises
    ------
    ShapeMismatchError
        If a tangent's dims differ from its primal's, or a rule returns a
        tangent with the wrong dims.
    """
    if len(primals) != len(tangents):
        raise ValueError(
            f"jvp expects one tangent per primal, got {len(primals)} and {len(tangents)}"
        )
    inputs = _as_inputs(primals)
    seeds = [t if isinstance(t, Array) else Array.from_numpy(t) for t in tangents]
    for i, (x, t) in enumerate(zip(inputs, seeds)):
        _check_dims("jvp", f"tangent {i}", t, x.dims)

    out = _trace(fn, inputs)

    tangent_of: Dict[int, MaybeArray] = {x.node_id: t for x, t in zip(inputs, seeds)}
    for node in _ancestors(out, inputs):
        if node.node_id in tangent_of or node.is_leaf:
            continue
        ins = [tangent_of.get(o.node_id, NO_GRADIENT) for o in node.operands]
        if all(t is NO_GRADIENT for t in ins):
            tangent_of[node.node_id] = NO_GRADIENT
            continue
        t_out = node.op.jvp(node.operands, ins, node)
        if t_out is not NO_GRADIENT:
            _check_dims(node.op.name, "jvp result", t_out, node.dims)
        tangent_of[node.node_id] = t_out

    t_out = tangent_of.get(out.node_id, NO_GRADIENT)
    if t_out is NO_GRADIENT:
        t_out = _zeros_for(out)
    return out, t_out


# ---------------------------------------------------------------------------
# Reverse mode
# ---------------------------------------------------------------------------
def _backward(
    out: Array, inputs: Sequence[Array], grad_output: Array
) -> Tuple[Array, ...]:
    from ._functional import add, real

    input_ids = {x.node_id for x in inputs}
    nodes = _ancestors(out, inputs)

    active = set(input_ids)
    for node in nodes:
        if any(o.node_id in active for o in node.operands):
            active.add(node.node_id)

    cotangent: Dict[int, Array] = {out.node_id: grad_output}
    visited = 0
    for node in reversed(nodes):
        if node.is_leaf or node.node_id in input_ids or node.node_id not in active:
            continue
        g = cotangent.get(node.node_id)
        if g is None:
            continue
        visited += 1
        grads = node.op.vjp(node.operands, g, node)
        if len(grads) != len(node.operands):
            raise ShapeMismatchError(
                node.op.name,
                f"vjp returned {len(grads)} entries for {len(node.operands)} operands",
            )
        for operand, gi in zip(node.operands, grads):
            if gi is NO_GRADIENT or operand.node_id not in active:
                continue
            _check_dims(node.op.name, "vjp result", gi, operand.dims)
            if gi.requires_complex and not operand.requires_complex:
                gi = real(gi)
            prev = cotangent.get(operand.node_id)
            cotangent[operand.node_id] = gi if prev is None else add(prev, gi)

    logger.debug("reverse pass visited %d of %d node(s)", visited, len(nodes))
    return tuple(
        cotangent[x.node_id] if x.node_id in cotangent else _zeros_for(x)
        for x in inputs
    )


def vjp(fn: Callable[..., Array], *primals: Any) -> Tuple[Array, Callable[[Any], Tuple[Array, ...]]]:
    """
    Evaluate `fn` and return a pullback for its vector-Jacobian product.

    Returns
    -------
    (Array, Callable)
        ``fn(*primals)`` and ``pullback(grad_output) -> tuple`` of gradients,
        one per primal (zeros for primals the output does not depend on).
        The pullback can be called several times.
        A complex cotangent for a real output is projected onto its real
        part, as on every interior edge of the reverse pass.
    """
    inputs = _as_inputs(primals)
    out = _trace(fn, inputs)

    def pullback(grad_output: Any) -> Tuple[Array, ...]:
        g = grad_output if isinstance(grad_output, Array) else Array.from_numpy(grad_output)
        _check_dims("vjp", "cotangent", g, out.dims)
        if g.requires_complex and not out.requires_complex:
            from ._functional import real

            g = real(g)
        return _backward(out, inputs, g)

    return out, pullback


def value_and_grad(
    fn: Callable[..., Array], argnums: ArgNums = 0
) -> Callable[..., Tuple[Array, Any]]:
    """
    Build a function returning ``(fn(*args), gradient)`` for a real,
    single-element output.

    Parameters
    ----------
    fn : Callable[..., Array]
        Scalar-valued function.
    argnums : int or Sequence[int], optional
        Which positional arguments to differentiate. An int yields a single
        gradient Array; a sequence yields a tuple. Defaults to 0.

    Raises
    ------
    TypeError
        (when called) if the output is complex or has more than one element.
    """

    def wrapped(*args: Any) -> Tuple[Array, Any]:
        nums, single = _normalize_argnums(argnums, len(args))
        inputs = _as_inputs(args)
        out = _trace(fn, inputs)
        if out.size != 1 or out.requires_complex:
            raise TypeError(
                "grad requires a real-valued function with a single-element output, "
                f"got dims={out.dims} complex={out.requires_complex}"
            )
        seed = Array.ones(out.dims, dtype=out.dtype)
        grads = _backward(out, [inputs[i] for i in nums], seed)
        return out, grads[0] if single else grads

    return wrapped


def grad(fn: Callable[..., Array], argnums: ArgNums = 0) -> Callable[..., Any]:
    """
    Build the gradient function of a real, single-element `fn`.

    The returned function maps the same arguments as `fn` to the gradient
    with respect to ``args[argnums]`` (a tuple when `argnums` is a sequence).
    Gradients are lazy Arrays and may be differentiated again.

    Examples
    --------
    >>> g = grad(lambda x: (x * x).sum())
    >>> g(Array.from_numpy(np.array([1.0, 2.0]))).to_numpy()
    array([2., 4.])
    """
    vg = value_and_grad(fn, argnums)

    def wrapped(*args: Any) -> Any:
        return vg(*args)[1]

    return wrapped


__all__ = [
    "passthrough_jvp",
    "passthrough_vjp",
    "jvp",
    "vjp",
    "grad",
    "value_and_grad",
]
