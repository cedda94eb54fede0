"""
Global engine configuration.

The engine has a single, process-wide configuration object. It selects the
materialization policy (lazy or eager), the lane width used by elementwise
kernels, the number of workers for parallel structured kernels, the default
floating dtype for new arrays, the shape-cache capacity, and whether
floating-point faults inside kernels raise.

Use `config_scope` to change settings temporarily:

    with config_scope(execution="eager", num_workers=4):
        y = conv1d(x, w)

Initial values can be overridden through environment variables:

- ``DIFFTENSOR_EXECUTION``   : "lazy" or "eager"
- ``DIFFTENSOR_LANE_WIDTH``  : positive int
- ``DIFFTENSOR_NUM_WORKERS`` : positive int
"""

from __future__ import annotations

import os
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from typing import Any, Iterator, Literal

import numpy as np

ExecutionPolicy = Literal["lazy", "eager"]
FloatingPointPolicy = Literal["ignore", "raise"]


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable snapshot of engine settings.

    Attributes
    ----------
    execution : {"lazy", "eager"}
        "lazy" materializes nodes on first read; "eager" materializes them as
        soon as the harness constructs them.
    lane_width : int
        Number of elements per lane batch in elementwise kernels.
    num_workers : int
        Worker threads for parallel-for in structured kernels (1 = serial).
    default_dtype : np.dtype
        Floating dtype for arrays built from Python scalars / lists.
    shape_cache_size : int
        Maximum number of memoized shape-inference results.
    floating_point_errors : {"ignore", "raise"}
        Whether overflow / invalid / divide-by-zero inside elementwise kernels
        raises `ExecutionError`.
    """

    execution: ExecutionPolicy = "lazy"
    lane_width: int = 8
    num_workers: int = 1
    default_dtype: Any = np.float64
    shape_cache_size: int = 4096
    floating_point_errors: FloatingPointPolicy = "ignore"

    def __post_init__(self) -> None:
        if self.execution not in ("lazy", "eager"):
            raise ValueError(
                f"execution must be 'lazy' or 'eager', got {self.execution!r}"
            )
        if self.floating_point_errors not in ("ignore", "raise"):
            raise ValueError(
                "floating_point_errors must be 'ignore' or 'raise', "
                f"got {self.floating_point_errors!r}"
            )
        for name in ("lane_width", "num_workers", "shape_cache_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{name} must be a positive int, got {value!r}")

        dt = np.dtype(self.default_dtype)
        if dt.kind != "f":
            raise ValueError(f"default_dtype must be a real floating dtype, got {dt}")
        object.__setattr__(self, "default_dtype", dt)


def _warn_if_oversubscribed(cfg: EngineConfig, stacklevel: int) -> None:
    cpus = os.cpu_count() or 1
    if cfg.num_workers > cpus:
        warnings.warn(
            f"num_workers={cfg.num_workers} exceeds the {cpus} available CPUs; "
            "structured kernels will oversubscribe threads.",
            RuntimeWarning,
            stacklevel=stacklevel + 1,
        )


def _from_environment() -> EngineConfig:
    overrides: dict[str, Any] = {}
    if "DIFFTENSOR_EXECUTION" in os.environ:
        overrides["execution"] = os.environ["DIFFTENSOR_EXECUTION"].strip().lower()
    if "DIFFTENSOR_LANE_WIDTH" in os.environ:
        overrides["lane_width"] = int(os.environ["DIFFTENSOR_LANE_WIDTH"])
    if "DIFFTENSOR_NUM_WORKERS" in os.environ:
        overrides["num_workers"] = int(os.environ["DIFFTENSOR_NUM_WORKERS"])
    cfg = EngineConfig(**overrides)
    _warn_if_oversubscribed(cfg, stacklevel=2)
    return cfg


_config: EngineConfig = _from_environment()
"""EngineConfig: the active process-wide configuration."""


def get_config() -> EngineConfig:
    """Return the active configuration snapshot."""
    return _config


def set_config(**changes: Any) -> EngineConfig:
    """
    Replace selected settings of the active configuration.

    Parameters
    ----------
    **changes
        Field names of `EngineConfig` and their new values.

    Returns
    -------
    EngineConfig
        The previous configuration (useful for manual restoration).

    Raises
    ------
    TypeError
        If an unknown setting name is given.
    ValueError
        If a value is invalid.

    Warns
    -----
    RuntimeWarning
        If `num_workers` exceeds the CPU count.
    """
    return _replace_config(changes, stacklevel=2)


def _replace_config(changes: dict[str, Any], stacklevel: int) -> EngineConfig:
    global _config
    known = {f.name for f in fields(EngineConfig)}
    unknown = set(changes) - known
    if unknown:
        raise TypeError(f"Unknown engine setting(s): {sorted(unknown)}")
    previous = _config
    updated = replace(_config, **changes)
    _warn_if_oversubscribed(updated, stacklevel=stacklevel + 1)
    _config = updated
    return previous


@contextmanager
def config_scope(**changes: Any) -> Iterator[EngineConfig]:
    """
    Context manager that temporarily changes engine settings.

    The previous configuration is restored on exit, including when the body
    raises. Scopes nest.

    Yields
    ------
    EngineConfig
        The configuration active inside the scope.
    """
    global _config
    # caller -> contextlib __enter__ -> this generator -> _replace_config
    previous = _replace_config(changes, stacklevel=3)
    try:
        yield _config
    finally:
        _config = previous
