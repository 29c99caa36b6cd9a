"""Declarative validation for classes.

``@validatable`` builds a class's schema once, when the class is created,
from its type hints and the constraints declared on its fields:

    ```python
    from dataclasses import dataclass
    from typing import Annotated

    from dataknobs_validation import constrained, rules, validatable

    @validatable
    @dataclass
    class Address:
        city: str = constrained(min_len=1)
        zip_code: Annotated[str, rules(pattern=r"^\\d{5}$")] = "00000"

    @validatable
    @dataclass
    class Customer:
        name: str = constrained(min_len=1, max_len=64)
        age: int | None = constrained(min=0, max=150, default=None)
        addresses: list[Address] = constrained(max_len=3, default_factory=list)

    result = Customer("", -1, [Address("")]).validate()
    ```

Fields without declarations are left alone. Two kinds are always walked:
fields whose hint carries rules at any depth (``list[Annotated[int,
rules(max=10)]]``), and fields whose type contains a validatable class
(directly, in a collection, or in a union of validatable classes) so that
its own constraints apply.
"""

from __future__ import annotations

import collections
import collections.abc
import dataclasses
import logging
import types
from collections.abc import Iterable, Mapping
from dataclasses import MISSING, dataclass
from typing import Annotated, Any, ClassVar, Union, get_args, get_origin, get_type_hints

from .compiler import SchemaBuilder
from .exceptions import SchemaNotFoundError
from .registry import FunctionTable
from .result import ErrorBuilder, ValidationResult
from .schema import SCHEMA_ATTRIBUTE, Node, Schema, schema_of
from .shapes import (
    FieldKind,
    Rule,
    RuleLike,
    Shape,
    coerce_rules,
    mapping,
    nested,
    optional,
    scalar,
    sequence,
    variants,
)

logger = logging.getLogger(__name__)

CONSTRAINTS_KEY = "validation"

_SEQUENCE_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.deque,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
    collections.abc.Collection,
)
_MAPPING_ORIGINS = (
    dict,
    collections.OrderedDict,
    collections.defaultdict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
)


@dataclass(frozen=True)
class Constraints:
    """Per-field declarations: rules and, optionally, an explicit shape."""

    rules: tuple[Rule, ...] = ()
    shape: Shape | None = None


def rules(*declared: RuleLike, shape: Shape | None = None, **named: Any) -> Constraints:
    """Declarations for use in ``Annotated[T, rules(...)]``."""
    return Constraints(coerce_rules(declared, named), shape)


def constrained(
    *declared: RuleLike,
    shape: Shape | None = None,
    default: Any = MISSING,
    default_factory: Any = MISSING,
    **named: Any,
) -> Any:
    """A ``dataclasses.field`` carrying validation declarations.

    Args:
        *declared: Rule declarations
        shape: Explicit field shape, overriding the one inferred from the
            type hint
        default: Field default, as for ``dataclasses.field``
        default_factory: Field default factory, as for ``dataclasses.field``
        **named: Keyword rule declarations (``min=0``, ``max_len=10``, ...)
    """
    kwargs: dict[str, Any] = {"metadata": {CONSTRAINTS_KEY: rules(*declared, shape=shape, **named)}}
    if default is not MISSING:
        kwargs["default"] = default
    if default_factory is not MISSING:
        kwargs["default_factory"] = default_factory
    return dataclasses.field(**kwargs)


def _is_validatable(annotation: Any, owner: type | None) -> bool:
    if not isinstance(annotation, type):
        return False
    return annotation is owner or schema_of(annotation) is not None


def infer_shape(annotation: Any, owner: type | None = None) -> Shape:
    """Derive a field shape from a type hint.

    Args:
        annotation: The resolved type hint
        owner: The class being declared, so it may refer to itself

    Returns:
        The inferred shape; ``Annotated`` metadata inside the hint is
        attached at the level where it appears
    """
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Annotated:
        shape = infer_shape(args[0], owner)
        for meta in args[1:]:
            if isinstance(meta, Constraints):
                if meta.shape is not None:
                    shape = meta.shape
                shape = shape.with_rules(*meta.rules)
        return shape

    if origin is Union or origin is types.UnionType:
        present = [arg for arg in args if arg is not type(None)]
        inner = infer_shape(present[0], owner) if len(present) == 1 else _infer_union(present, owner)
        if len(present) < len(args):
            return optional(inner)
        return inner

    if origin in _SEQUENCE_ORIGINS or annotation in _SEQUENCE_ORIGINS:
        if origin is tuple and not (len(args) == 2 and args[1] is Ellipsis):
            return sequence(scalar())
        return sequence(infer_shape(args[0], owner) if args else scalar())

    if origin in _MAPPING_ORIGINS or annotation in _MAPPING_ORIGINS:
        if len(args) == 2:
            return mapping(infer_shape(args[1], owner), keys=infer_shape(args[0], owner))
        return mapping(scalar())

    if _is_validatable(annotation, owner):
        return nested(annotation)

    if isinstance(annotation, type) and origin is None and annotation is not object:
        return scalar(annotation)

    return scalar()


def _infer_union(members: list[Any], owner: type | None) -> Shape:
    if all(_is_validatable(member, owner) for member in members):
        return variants({member.__name__: member for member in members})
    return scalar()


def _split_annotated(annotation: Any) -> tuple[Any, list[Constraints]]:
    if get_origin(annotation) is Annotated:
        base, *metadata = get_args(annotation)
        return base, [meta for meta in metadata if isinstance(meta, Constraints)]
    return annotation, []


def _field_constraints(cls: type, name: str) -> Constraints | None:
    if dataclasses.is_dataclass(cls):
        for spec in dataclasses.fields(cls):
            if spec.name == name:
                return spec.metadata.get(CONSTRAINTS_KEY)
    attribute = getattr(cls, name, None)
    if isinstance(attribute, dataclasses.Field):
        return attribute.metadata.get(CONSTRAINTS_KEY)
    return None


def _summary(cls: type) -> str | None:
    doc = (cls.__doc__ or "").strip()
    # dataclass() fills in the signature when there is no docstring
    if not doc or doc.startswith(f"{cls.__name__}("):
        return None
    return doc.split("\n")[0]


def _validate_instance(self: Any) -> ValidationResult:
    return validate(self)


def validatable(
    cls: type | None = None,
    *,
    name: str | None = None,
    checks: Iterable[RuleLike] | Mapping[str, Any] = (),
    functions: FunctionTable | None = None,
) -> Any:
    """Class decorator that compiles and attaches a validation schema.

    Works with or without arguments. Apply it above ``@dataclass`` (or on
    any class with annotations).

    Args:
        cls: The class, when used without arguments
        name: Schema name; defaults to the class name
        checks: Rules applied to the whole instance after its fields
        functions: Function table for custom constraints

    Raises:
        SchemaError: If any declaration on the class is malformed
    """

    def wrap(cls: type) -> type:
        builder = SchemaBuilder(
            name or cls.__name__,
            functions,
            target_type=cls,
            description=_summary(cls),
        )
        hints = get_type_hints(cls, localns={cls.__name__: cls}, include_extras=True)
        for field_name, annotation in hints.items():
            if get_origin(annotation) is ClassVar or isinstance(annotation, dataclasses.InitVar):
                continue
            base, declared = _split_annotated(annotation)
            from_field = _field_constraints(cls, field_name)
            if from_field is not None:
                declared.append(from_field)

            shape: Shape | None = None
            field_rules: list[Rule] = []
            for constraints in declared:
                if constraints.shape is not None:
                    shape = constraints.shape
                field_rules.extend(constraints.rules)
            if shape is None:
                shape = infer_shape(base, cls)
                if not (field_rules or shape.has_rules() or shape.contains(FieldKind.NESTED, FieldKind.ENUM)):
                    continue
            builder.field(field_name, shape, *field_rules)

        if checks:
            builder.check(*([checks] if isinstance(checks, Mapping) else checks))
        schema = builder.build()
        setattr(cls, SCHEMA_ATTRIBUTE, schema)
        if not hasattr(cls, "validate"):
            cls.validate = _validate_instance
        logger.debug(f"Attached validation schema to {cls.__qualname__}: {schema.field_names}")
        return cls

    if cls is None:
        return wrap
    return wrap(cls)


def validate(value: Any, target: Schema | Shape | Node | type | None = None) -> ValidationResult:
    """Validate a value, collecting every violation.

    Args:
        value: The value to validate
        target: What to validate against: a ``Schema``, a ``Shape`` (compiled
            with the built-in functions), a compiled ``Node``, or a
            validatable class. When omitted, the value's own class schema is
            used; lists, tuples and sets of validatable values are walked by
            position, mappings by key, and ``None`` is valid.

    Returns:
        ValidationResult

    Raises:
        SchemaNotFoundError: If no schema applies to the value
        SchemaError: If ``target`` is a malformed shape
    """
    if isinstance(target, Schema):
        return target.validate(value)
    if isinstance(target, Node):
        return target.validate(value)
    if isinstance(target, Shape):
        return SchemaBuilder("value").compile_shape(target).validate(value)
    if target is not None:
        schema = schema_of(target) if isinstance(target, type) else None
        if schema is None:
            raise SchemaNotFoundError(target if isinstance(target, type) else type(target))
        return schema.validate(value)

    eb = ErrorBuilder()
    _collect(value, eb)
    return eb.build(value)


def _collect(value: Any, eb: ErrorBuilder) -> None:
    if value is None:
        return
    schema = schema_of(value)
    if schema is not None:
        schema.collect(value, eb)
    elif isinstance(value, Mapping):
        for key, item in value.items():
            with eb.at_key(key):
                _collect(item, eb)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for position, item in enumerate(value):
            with eb.at_index(position):
                _collect(item, eb)
    else:
        raise SchemaNotFoundError(type(value))
