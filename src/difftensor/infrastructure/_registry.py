"""
Process-wide operation registry.

Every concrete operation in `difftensor.infrastructure` registers itself here
with `@operation_registry.register("<name>")`. Functional wrappers resolve
their descriptors from this registry once, at import time.
"""

from ..domain.utils._registry import create_operation_registry

operation_registry = create_operation_registry()
"""OperationRegistry: the registry shared by all built-in operations."""
