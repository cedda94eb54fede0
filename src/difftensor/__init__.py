"""
difftensor: a strided tensor engine with forward- and reverse-mode
automatic differentiation.

Every operation implements four protocols (shape inference, forward
execution over strided memory, JVP and VJP) and is applied through a single
harness that builds lazily-evaluated graph nodes.

Example
-------
>>> import numpy as np
>>> import difftensor as dt
>>> x = dt.Array.from_numpy(np.array([0.5, 1.0]))
>>> dt.grad(lambda x: dt.atan(x).sum())(x).to_numpy()
array([0.8, 0.5])
"""

from .domain import (
    NO_GRADIENT,
    ArrayShape,
    DiffTensorError,
    ExecutionError,
    InvalidParameterError,
    NodeState,
    NoGradient,
    Operation,
    PoisonedNodeError,
    ShapeMismatchError,
    UnsupportedOperandKindError,
    default_jvp,
    default_vjp,
)
from .infrastructure import (
    Array,
    EngineConfig,
    apply,
    check_grads,
    check_jvp,
    check_vjp,
    config_scope,
    get_config,
    grad,
    jvp,
    materialize,
    numerical_jvp,
    operation_registry,
    passthrough_jvp,
    passthrough_vjp,
    set_config,
    shape_cache,
    value_and_grad,
    vjp,
)
from .infrastructure._functional import (
    abs,
    absolute,
    add,
    atan,
    broadcast_to,
    conj,
    conv1d,
    conv1d_input_grad,
    conv1d_weight_grad,
    cos,
    div,
    exp,
    log,
    mul,
    neg,
    pow_scalar,
    real,
    reshape,
    sign,
    sin,
    sqrt,
    sub,
    sum,
    sum_to_shape,
    tanh,
    transpose,
)
from .infrastructure.elementwise import (
    BinaryElementwiseOperation,
    UnaryElementwiseOperation,
)

__version__ = "0.1.0"
