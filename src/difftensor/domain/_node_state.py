"""
Lifecycle states of a graph node.

A node is created by the harness with its shape known (`SHAPE_ONLY`). The
first demand for its values moves it through `MATERIALIZING` to
`MATERIALIZED`. A failed forward execution moves it to `POISONED`, which is
terminal: every later read fails.
"""

from enum import Enum


class NodeState(Enum):
    """
    Enumeration of node lifecycle states.

    Attributes
    ----------
    SHAPE_ONLY : NodeState
        Shape inferred, values pending forward execution.
    MATERIALIZING : NodeState
        Forward execution in progress.
    MATERIALIZED : NodeState
        Buffer populated and consistent with the node's shape.
    POISONED : NodeState
        Forward execution failed; the buffer must never be read.
    """

    SHAPE_ONLY = "shape_only"
    MATERIALIZING = "materializing"
    MATERIALIZED = "materialized"
    POISONED = "poisoned"
