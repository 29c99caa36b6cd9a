"""Function table: the name -> constraint function registry.

Built-in and custom constraint functions live in the same table and are
looked up the same way. A table is open for registration until a schema is
built from it; from then on it is frozen, so a compiled schema can never see
its functions change underneath it.

Example:
    ```python
    from dataknobs_validation import FunctionTable, SchemaBuilder

    table = FunctionTable.with_builtins("orders")

    @table.function()
    def even(value, _param):
        return value % 2 == 0 or f"{value} is odd"

    schema = SchemaBuilder("order", table).field("quantity", int, "even").build()
    ```
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Dict

from dataknobs_common import Registry

from .exceptions import RegistrationError, UnknownConstraintError
from .functions import BUILTIN_FUNCTIONS, ConstraintFunction
from .shapes import VALUE_KINDS, FieldKind, Shape

logger = logging.getLogger(__name__)


class FunctionTable(Registry[ConstraintFunction]):
    """Registry of constraint functions that can be frozen.

    Storage, locking and the lookup helpers (``has``, ``list_keys``,
    ``items``, ``count``, ``len``, ``in``, iteration) come from the common
    ``Registry``. This class adds registration by function name, the frozen
    state and constraint-specific errors.

    Args:
        name: Name for this table instance
        functions: Functions to register up front
    """

    def __init__(self, name: str = "constraints", functions: tuple[ConstraintFunction, ...] = ()):
        super().__init__(name)
        self._frozen = False
        for function in functions:
            self.register(function)

    @classmethod
    def with_builtins(cls, name: str = "constraints") -> FunctionTable:
        """Create an open table pre-populated with the built-in functions."""
        return cls(name, BUILTIN_FUNCTIONS)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(  # type: ignore[override]
        self,
        function: ConstraintFunction,
        allow_overwrite: bool = False,
        metadata: Dict[str, Any] | None = None,
    ) -> None:
        """Register a constraint function under its name.

        Args:
            function: The function to register
            allow_overwrite: Whether to replace an existing function
            metadata: Optional metadata, passed through to the registry

        Raises:
            RegistrationError: If the name is taken and ``allow_overwrite`` is
                False, or if the table is frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistrationError(
                    f"Function table '{self.name}' is frozen",
                    context={"table": self.name, "constraint": function.name},
                )
            if not allow_overwrite and self.has(function.name):
                raise RegistrationError(
                    f"Constraint '{function.name}' already registered in {self.name}",
                    context={"table": self.name, "constraint": function.name},
                )
            super().register(function.name, function, metadata=metadata, allow_overwrite=True)
            logger.debug(f"Registered constraint '{function.name}' in {self.name}")

    def unregister(self, key: str) -> ConstraintFunction:
        with self._lock:
            if self._frozen:
                raise RegistrationError(
                    f"Function table '{self.name}' is frozen",
                    context={"table": self.name, "constraint": key},
                )
            return super().unregister(key)

    def clear(self) -> None:
        with self._lock:
            if self._frozen:
                raise RegistrationError(f"Function table '{self.name}' is frozen", context={"table": self.name})
            super().clear()

    def register_function(
        self,
        name: str,
        func: Callable[[Any, Any], Any],
        *,
        applies_to: frozenset[FieldKind] = VALUE_KINDS,
        check_param: Callable[[Any, Shape], str | None] | None = None,
        bound: str | None = None,
        group: str | None = None,
        exclusive: bool = False,
        callable_param: bool = False,
        description: str = "",
        allow_overwrite: bool = False,
    ) -> ConstraintFunction:
        """Wrap ``func`` in a ``ConstraintFunction`` and register it."""
        function = ConstraintFunction(
            name,
            func,
            applies_to=frozenset(applies_to),
            check_param=check_param,
            bound=bound,
            group=group,
            exclusive=exclusive,
            callable_param=callable_param,
            description=description or (func.__doc__ or "").strip(),
        )
        self.register(function, allow_overwrite=allow_overwrite)
        return function

    def function(self, name: str | None = None, **options: Any) -> Callable[[Callable], Callable]:
        """Decorator form of ``register_function``; the function name is the default."""

        def decorator(func: Callable) -> Callable:
            self.register_function(name or func.__name__, func, **options)
            return func

        return decorator

    def get(self, name: str) -> ConstraintFunction:
        """Look up a function by name.

        Raises:
            UnknownConstraintError: If no function has that name
        """
        function = self.get_optional(name)
        if function is None:
            raise UnknownConstraintError(name, self.list_keys(), context={"table": self.name})
        return function

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def freeze(self) -> FunctionTable:
        """Close the table to further registration; idempotent."""
        with self._lock:
            if not self._frozen:
                self._frozen = True
                logger.debug(f"Froze function table {self.name} with {self.count()} functions")
        return self

    def copy(self, name: str | None = None) -> FunctionTable:
        """An open copy of this table, e.g. to extend a frozen one."""
        return FunctionTable(name or self.name, tuple(self.list_items()))

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"FunctionTable({self.name!r}, {self.count()} functions, {state})"


_default_table: FunctionTable | None = None
_default_lock = threading.Lock()


def default_functions() -> FunctionTable:
    """The shared, frozen table of built-in functions.

    Schemas built without an explicit table use this one. To add custom
    functions, start from ``FunctionTable.with_builtins()`` or
    ``default_functions().copy()``.
    """
    global _default_table
    with _default_lock:
        if _default_table is None:
            _default_table = FunctionTable.with_builtins("builtins").freeze()
        return _default_table
