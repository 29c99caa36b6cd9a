"""Exception hierarchy for schema construction and lookup failures.

These exceptions describe problems with *declarations*: unknown constraint
names, parameters that cannot apply to a field, contradictory bounds,
malformed configuration. They are raised while a schema is being built,
never while a value is being validated. Constraint violations found in data
are reported as ``ValidationError`` records inside a ``ValidationResult``
(see ``dataknobs_validation.result``), not raised.

All of them extend the shared ``dataknobs_common`` hierarchy, so callers
that already handle ``DataknobsError`` (or its ``ConfigurationError`` and
``NotFoundError``) catch these too.

Example:
    ```python
    import logging

    from dataknobs_validation import SchemaBuilder, SchemaError

    logger = logging.getLogger(__name__)

    try:
        SchemaBuilder("user").field("age", int, min="ten")
    except SchemaError as e:
        logger.error(f"Bad schema: {e}")
        logger.error(f"Context: {e.context}")
    ```
"""

from typing import Any, Dict

from dataknobs_common import ConfigurationError as BaseConfigurationError
from dataknobs_common import DataknobsError
from dataknobs_common import NotFoundError as BaseNotFoundError
from dataknobs_common import OperationError


class ValidationEngineError(DataknobsError):
    """Base exception for the validation engine.

    Carries an optional context dictionary describing where the problem was
    found (schema name, field, constraint name, offending parameter).

    Example:
        ```python
        error = ValidationEngineError(
            "Bad declaration",
            context={"schema": "user", "field": "age"}
        )
        str(error)
        # 'Bad declaration'
        ```
    """

    pass


class SchemaError(ValidationEngineError):
    """Raised when a schema declaration is malformed.

    Always raised at construction time, so a type whose declaration is
    broken cannot be validated at all until the declaration is fixed.
    """

    pass


class UnknownConstraintError(SchemaError):
    """Raised when a declaration names a constraint the function table lacks."""

    def __init__(self, name: str, available: list[str], context: Dict[str, Any] | None = None):
        self.name = name
        self.available = available
        merged = {"constraint": name, "available": available}
        merged.update(context or {})
        super().__init__(f"Unknown constraint '{name}'", context=merged)


class ConstraintTypeError(SchemaError):
    """Raised when a constraint cannot apply to a field.

    Covers both a constraint attached to the wrong kind of field (``min`` on
    a list, ``max_len`` on an ``int``) and a parameter that does not type
    check against the field (``min = "ten"`` on an ``int`` field).
    """

    pass


class ConflictingConstraintError(SchemaError):
    """Raised when declarations on one field contradict or repeat each other.

    Example:
        ```python
        raise ConflictingConstraintError(
            "min (10) is greater than max (5)",
            context={"field": "age", "lower": 10, "upper": 5}
        )
        ```
    """

    pass


class DuplicateFieldError(SchemaError):
    """Raised when the same field is declared twice in one schema."""

    def __init__(self, schema: str, field: str | int):
        self.field = field
        super().__init__(
            f"Field '{field}' is already declared in schema '{schema}'",
            context={"schema": schema, "field": field},
        )


class ConfigurationError(SchemaError, BaseConfigurationError):
    """Raised when a configuration-driven schema definition is malformed.

    Example:
        ```python
        raise ConfigurationError(
            "Invalid field type: integr",
            context={"schema": "user", "field": "age", "type": "integr"}
        )
        ```
    """

    pass


class RegistrationError(ValidationEngineError, OperationError):
    """Raised when a constraint function cannot be registered.

    Happens when the name is already taken or when the function table has
    been frozen by a schema that uses it.
    """

    pass


class NotFoundError(ValidationEngineError, BaseNotFoundError):
    """Raised when a requested item is not found."""

    pass


class SchemaNotFoundError(NotFoundError):
    """Raised when ``validate`` is given a value whose type has no schema."""

    def __init__(self, value_type: type):
        self.value_type = value_type
        super().__init__(
            f"No validation schema for type '{value_type.__name__}'",
            context={"type": value_type.__name__},
        )


__all__ = [
    "ValidationEngineError",
    "SchemaError",
    "UnknownConstraintError",
    "ConstraintTypeError",
    "ConflictingConstraintError",
    "DuplicateFieldError",
    "ConfigurationError",
    "RegistrationError",
    "NotFoundError",
    "SchemaNotFoundError",
]
