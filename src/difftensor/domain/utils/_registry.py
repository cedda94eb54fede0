"""
Operation registration via decorators.

This module provides the single registration point through which operation
descriptors become known to the framework. Registration happens once, at
import time, by decorating an `Operation` subclass:

    operation_registry = create_operation_registry()

    @operation_registry.register("atan")
    class AtanOp(UnaryElementwiseOperation):
        ...

The decorator instantiates the class once, stamps the registered name onto
it, and stores the shared instance. Callers resolve descriptors by name when
they build their functional wrappers (import time), never per call: the
harness itself receives descriptor instances and performs no name lookups.

Important notes
---------------
- Registered names are unique per registry; registering a second class under
  the same name raises `ValueError` unless `replace=True` is passed.
- Different registries do not share mappings.
"""

from collections import namedtuple
from typing import Callable, Dict, Iterator, Type

from typing_extensions import TypeVar

from .._operation import Operation

OpT = TypeVar("OpT", bound=Type[Operation])


RegistryEntry = namedtuple("RegistryEntry", ["Name", "OpClass", "Instance"])
"""
Tuple-like record describing one registered operation.

Fields
------
Name : str
    Registered operation name.
OpClass : type[Operation]
    The decorated class.
Instance : Operation
    The shared, stateless descriptor instance.
"""


class OperationRegistry:
    """
    Name-keyed store of shared operation descriptors.

    Instances are created by `create_operation_registry`.
    """

    def __init__(self, entries: Dict[str, RegistryEntry]) -> None:
        self._entries = entries

    def register(self, name: str, *, replace: bool = False) -> Callable[[OpT], OpT]:
        """
        Build a class decorator registering an `Operation` subclass.

        Parameters
        ----------
        name : str
            Unique operation name. Assigned to the class's `name` attribute.
        replace : bool, optional
            Allow overriding an existing registration. Defaults to False.

        Returns
        -------
        Callable[[type], type]
            Decorator returning the class unchanged (after registration).

        Raises
        ------
        TypeError
            If the decorated object is not an `Operation` subclass.
        ValueError
            If `name` is empty or already registered and `replace` is False.
        """
        if not isinstance(name, str) or not name:
            raise ValueError(f"operation name must be a non-empty str, got {name!r}")

        def decorator(op_cls: OpT) -> OpT:
            if not (isinstance(op_cls, type) and issubclass(op_cls, Operation)):
                raise TypeError(
                    f"register({name!r}) expects an Operation subclass, got {op_cls!r}"
                )
            if name in self._entries and not replace:
                raise ValueError(
                    f"Operation {name!r} is already registered by "
                    f"{self._entries[name].OpClass.__name__}"
                )
            op_cls.name = name
            self._entries[name] = RegistryEntry(name, op_cls, op_cls())
            return op_cls

        return decorator

    def resolve(self, name: str) -> Operation:
        """
        Return the shared descriptor registered under `name`.

        Raises
        ------
        KeyError
            If no operation is registered under `name`.
        """
        entry = self._entries.get(name)
        if entry is None:
            raise KeyError(f"No operation registered under {name!r}")
        return entry.Instance

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


def create_operation_registry() -> OperationRegistry:
    """
    Create an empty registry with its own closure-local mapping.

    Returns
    -------
    OperationRegistry
        A fresh registry.
    """
    entries: Dict[str, RegistryEntry] = {}
    """Mapping from operation name to its registry entry."""

    return OperationRegistry(entries)
