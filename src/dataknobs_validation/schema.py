"""Compiled schemas and the recursive validation traversal.

A ``Schema`` is what ``SchemaBuilder`` produces: an ordered tuple of fields,
each holding a compiled ``Node``. Validation walks the fields left to right,
dispatches on each node's ``FieldKind`` and funnels every failure into one
``ErrorBuilder``, so a single pass reports every violation in the value.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .functions import ConstraintFunction
from .path import PathSegment
from .result import ErrorBuilder, ValidationResult
from .shapes import FieldKind

logger = logging.getLogger(__name__)

SCHEMA_ATTRIBUTE = "__validation_schema__"


@dataclass(frozen=True)
class BoundRule:
    """A constraint function resolved from the table, with its parameter."""

    function: ConstraintFunction
    param: Any = None

    @property
    def name(self) -> str:
        return self.function.name

    def apply(self, value: Any, eb: ErrorBuilder) -> None:
        outcome = self.function.evaluate(value, self.param)
        if outcome is None:
            return
        if isinstance(outcome, ValidationResult):
            eb.include(outcome)
        else:
            eb.report(self.function.name, outcome)

    def to_dict(self) -> dict[str, Any]:
        param = self.param
        if callable(param) or isinstance(param, tuple):
            param = repr(param)
        return {self.name: param}

    def __str__(self) -> str:
        return f"{self.name}={self.param!r}"


@dataclass(frozen=True, eq=False)
class Node:
    """One compiled level of a field: its kind, bound rules and children."""

    kind: FieldKind
    rules: tuple[BoundRule, ...] = ()
    python_type: type | None = None
    inner: Node | None = None
    keys: Node | None = None
    target: Any = None
    variants: Mapping[str, Node | None] = field(default_factory=dict)
    tag: str | Callable[[Any], str] | None = None

    def validate(self, value: Any) -> ValidationResult:
        """Validate ``value`` against this node alone, rooted at the empty path."""
        eb = ErrorBuilder()
        visit(self, value, eb)
        return eb.build(value)

    def describe(self) -> str:
        if self.kind is FieldKind.SCALAR:
            return self.python_type.__name__ if self.python_type else "any"
        if self.kind is FieldKind.NESTED:
            target = self.target
            return getattr(target, "name", None) or getattr(target, "__name__", str(target))
        if self.kind is FieldKind.ENUM:
            return " | ".join(self.variants)
        return f"{self.kind.value}[{self.inner.describe() if self.inner else 'any'}]"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.python_type is not None:
            data["type"] = self.python_type.__name__
        if self.rules:
            data["rules"] = [rule.to_dict() for rule in self.rules]
        if self.inner is not None:
            data["inner"] = self.inner.to_dict()
        if self.keys is not None:
            data["keys"] = self.keys.to_dict()
        if self.kind is FieldKind.NESTED:
            data["schema"] = self.describe()
        if self.kind is FieldKind.ENUM:
            data["variants"] = {
                name: payload.to_dict() if payload is not None else None
                for name, payload in self.variants.items()
            }
        return data


@dataclass(frozen=True)
class FieldSpec:
    """A field identifier and its compiled node.

    String identifiers name attributes or mapping keys; integer identifiers
    address positions of tuple-like values.
    """

    name: str | int
    node: Node

    @property
    def segment(self) -> PathSegment:
        if isinstance(self.name, int):
            return PathSegment.index(self.name)
        return PathSegment.field(self.name)


@dataclass(frozen=True, eq=False)
class Schema:
    """Immutable, compiled validation schema for one structure type.

    Attributes:
        name: Schema name
        fields: Fields in declaration order
        checks: Rules applied to the whole value after the fields
        target_type: The class this schema was declared for, if any
        description: Optional human-readable description
    """

    name: str
    fields: tuple[FieldSpec, ...] = ()
    checks: tuple[BoundRule, ...] = ()
    target_type: type | None = None
    description: str | None = None

    @property
    def field_names(self) -> list[str | int]:
        return [spec.name for spec in self.fields]

    def get_field(self, name: str | int) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def validate(self, value: Any) -> ValidationResult:
        """Validate a value, collecting every violation.

        Args:
            value: Object, mapping or tuple to validate

        Returns:
            ValidationResult; ``valid`` is True exactly when no constraint
            anywhere in the value failed
        """
        eb = ErrorBuilder()
        if value is None:
            _report_required(eb)
        else:
            self.collect(value, eb)
        result = eb.build(value)
        logger.debug(f"Validated {self.name}: {len(result.errors)} error(s)")
        return result

    def collect(self, value: Any, eb: ErrorBuilder) -> None:
        """Walk this schema's fields and checks, reporting into ``eb``.

        Errors land under ``eb``'s current path, which is how nested schemas
        report relative to the field that contains them.
        """
        for spec in self.fields:
            with eb.at(spec.segment):
                visit(spec.node, _get_field(value, spec.name), eb)
        for rule in self.checks:
            rule.apply(value, eb)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "fields": [{"name": spec.name, **spec.node.to_dict()} for spec in self.fields],
        }
        if self.checks:
            data["checks"] = [rule.to_dict() for rule in self.checks]
        if self.description:
            data["description"] = self.description
        return data

    def __repr__(self) -> str:
        return f"Schema({self.name!r}, fields={self.field_names!r})"


def schema_of(target: Any) -> Schema | None:
    """The schema attached to a class (or to an instance's class), if any."""
    if isinstance(target, Schema):
        return target
    cls = target if isinstance(target, type) else type(target)
    schema = getattr(cls, SCHEMA_ATTRIBUTE, None)
    return schema if isinstance(schema, Schema) else None


def _get_field(value: Any, name: str | int) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    if isinstance(name, int):
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and -len(value) <= name < len(value):
            return value[name]
        return None
    return getattr(value, name, None)


def _report_required(eb: ErrorBuilder) -> None:
    eb.report("required", {"message": "value is required"})


def _type_matches(value: Any, python_type: type | None) -> bool:
    if python_type is None or python_type is object:
        return True
    if isinstance(value, bool) and python_type in (int, float, Decimal):
        return False
    if python_type is float and isinstance(value, int):
        return True
    return isinstance(value, python_type)


def _report_type(eb: ErrorBuilder, expected: str, value: Any) -> None:
    eb.report(
        "type",
        {
            "message": f"expected {expected}, got {type(value).__name__}",
            "expected": expected,
            "actual": type(value).__name__,
        },
    )


def _apply_rules(node: Node, value: Any, eb: ErrorBuilder) -> None:
    for rule in node.rules:
        rule.apply(value, eb)


def visit(node: Node, value: Any, eb: ErrorBuilder) -> None:
    """Validate ``value`` against ``node`` at ``eb``'s current path."""
    if node.kind is FieldKind.OPTIONAL:
        if value is None:
            return
        _apply_rules(node, value, eb)
        if node.inner is not None:
            visit(node.inner, value, eb)
        return

    if value is None:
        _report_required(eb)
        return

    _VISITORS[node.kind](node, value, eb)


def _visit_scalar(node: Node, value: Any, eb: ErrorBuilder) -> None:
    if not _type_matches(value, node.python_type):
        _report_type(eb, node.python_type.__name__, value)
        return
    _apply_rules(node, value, eb)


def _visit_sequence(node: Node, value: Any, eb: ErrorBuilder) -> None:
    if not isinstance(value, Collection) or isinstance(value, (str, bytes, bytearray, Mapping)):
        _report_type(eb, "sequence", value)
        return
    _apply_rules(node, value, eb)
    if node.inner is None:
        return
    for position, item in enumerate(value):
        with eb.at_index(position):
            visit(node.inner, item, eb)


def _visit_mapping(node: Node, value: Any, eb: ErrorBuilder) -> None:
    if not isinstance(value, Mapping):
        _report_type(eb, "mapping", value)
        return
    _apply_rules(node, value, eb)
    for key, item in value.items():
        with eb.at_key(key):
            if node.keys is not None:
                visit(node.keys, key, eb)
            if node.inner is not None:
                visit(node.inner, item, eb)


def resolve_target(target: Any) -> Schema:
    """Find the schema a nested node points at.

    Classes are resolved lazily so that a type can refer to itself.
    """
    schema = schema_of(target)
    if schema is None:
        name = getattr(target, "__name__", repr(target))
        raise LookupError(f"'{name}' has no validation schema")
    return schema


def _is_structure(schema: Schema, value: Any) -> bool:
    """True if ``value`` can hold the schema's fields."""
    if not schema.fields or isinstance(value, Mapping):
        return True
    if schema.target_type is not None and isinstance(value, schema.target_type):
        return True
    for spec in schema.fields:
        if isinstance(spec.name, int):
            if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
                return True
        elif hasattr(value, spec.name):
            return True
    return False


def _visit_nested(node: Node, value: Any, eb: ErrorBuilder) -> None:
    _apply_rules(node, value, eb)
    schema = resolve_target(node.target)
    if not _is_structure(schema, value):
        _report_type(eb, schema.name, value)
        return
    schema.collect(value, eb)


def _active_variant(node: Node, value: Any) -> tuple[Any, Any]:
    """Return the active variant's name and its payload."""
    tag = node.tag
    if callable(tag):
        return tag(value), value
    if isinstance(tag, str):
        if isinstance(value, Mapping):
            return value.get(tag), value
        return getattr(value, tag, None), value
    if isinstance(value, enum.Enum):
        return value.name, value.value
    return type(value).__name__, value


def _report_variant(eb: ErrorBuilder, node: Node, actual: str, message: str) -> None:
    expected = list(node.variants)
    eb.report(
        "variant",
        {
            "message": f"{message}, expected one of: {', '.join(expected)}",
            "expected": expected,
            "actual": actual,
        },
    )


def _visit_enum(node: Node, value: Any, eb: ErrorBuilder) -> None:
    _apply_rules(node, value, eb)
    try:
        name, payload = _active_variant(node, value)
        known = name in node.variants
    except Exception as e:
        # A raising tag function or an unhashable tag value selects no variant
        logger.debug(f"Variant tag of {type(value).__name__} could not be resolved: {e!r}")
        _report_variant(eb, node, type(e).__name__, f"variant could not be determined ({type(e).__name__}: {e})")
        return
    if not known:
        _report_variant(eb, node, str(name), f"unknown variant {name!r}")
        return
    payload_node = node.variants[name]
    if payload_node is None:
        return
    with eb.at_variant(name):
        visit(payload_node, payload, eb)


_VISITORS: dict[FieldKind, Callable[[Node, Any, ErrorBuilder], None]] = {
    FieldKind.SCALAR: _visit_scalar,
    FieldKind.SEQUENCE: _visit_sequence,
    FieldKind.MAPPING: _visit_mapping,
    FieldKind.NESTED: _visit_nested,
    FieldKind.ENUM: _visit_enum,
}
