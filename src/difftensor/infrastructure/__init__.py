"""
NumPy-backed implementation of the operation framework: storage, kernels,
the op-application harness, the built-in operations and the autodiff
drivers.
"""

from ._array import Array
from ._config import EngineConfig, config_scope, get_config, set_config
from ._harness import apply, materialize, shape_cache
from ._registry import operation_registry
from . import _functional as functional
from ._autodiff import (
    grad,
    jvp,
    passthrough_jvp,
    passthrough_vjp,
    value_and_grad,
    vjp,
)
from ._gradcheck import check_grads, check_jvp, check_vjp, numerical_jvp

__all__ = [
    "Array",
    "EngineConfig",
    "config_scope",
    "get_config",
    "set_config",
    "apply",
    "materialize",
    "shape_cache",
    "operation_registry",
    "functional",
    "grad",
    "jvp",
    "vjp",
    "value_and_grad",
    "passthrough_jvp",
    "passthrough_vjp",
    "check_grads",
    "check_jvp",
    "check_vjp",
    "numerical_jvp",
]
