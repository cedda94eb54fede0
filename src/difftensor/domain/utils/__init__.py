from ._registry import OperationRegistry, RegistryEntry, create_operation_registry

__all__ = [
    OperationRegistry.__name__,
    "RegistryEntry",
    create_operation_registry.__name__,
]
