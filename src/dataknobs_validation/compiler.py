"""Schema compiler: declarative field rules in, executable ``Schema`` out.

``SchemaBuilder`` checks every declaration as it is made, so a malformed
schema fails where it is written rather than the first time data arrives:

- unknown constraint names
- constraints attached to a kind of field they cannot apply to
- parameters that do not type check against the field
- duplicate or contradictory declarations on one field
- fields declared twice, nested targets without a schema

Example:
    ```python
    from dataknobs_validation import SchemaBuilder, optional, sequence

    schema = (
        SchemaBuilder("user")
        .field("name", str, min_len=1, max_len=64)
        .field("age", int, min=0, max=150)
        .field("nickname", optional(str), max_len=32)
        .field("tags", sequence(str), max_len=5)
        .build()
    )
    result = schema.validate({"name": "", "age": 200, "tags": []})
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Dict

from .exceptions import (
    ConflictingConstraintError,
    ConstraintTypeError,
    DuplicateFieldError,
    SchemaError,
    UnknownConstraintError,
)
from .functions import ConstraintFunction
from .registry import FunctionTable, default_functions
from .schema import BoundRule, FieldSpec, Node, Schema, schema_of
from .shapes import FieldKind, Rule, RuleLike, Shape, as_shape, coerce_rules

logger = logging.getLogger(__name__)

ParamResolver = Callable[[ConstraintFunction, Any], Any]

_WRAPPER_KINDS = (FieldKind.OPTIONAL, FieldKind.SEQUENCE, FieldKind.MAPPING)


def _where(context: Dict[str, Any]) -> str:
    parts = [f"{key} '{context[key]}'" for key in ("field", "variant") if key in context]
    parts.append(f"schema '{context.get('schema')}'")
    return " in ".join(parts)


class SchemaBuilder:
    """Builds a ``Schema`` one declaration at a time.

    Args:
        name: Schema name, used in error messages and error context
        functions: Function table to resolve constraint names against;
            defaults to the shared built-in table
        target_type: The class being described; a nested field may refer
            to it before its schema exists
        description: Optional human-readable description
        param_resolver: ``resolver(function, param)`` run on every declared
            parameter before it is checked, e.g. to import callables named
            by string
    """

    def __init__(
        self,
        name: str,
        functions: FunctionTable | None = None,
        *,
        target_type: type | None = None,
        description: str | None = None,
        param_resolver: ParamResolver | None = None,
    ):
        self.name = name
        self._functions = functions if functions is not None else default_functions()
        self._target_type = target_type
        self._description = description
        self._param_resolver = param_resolver
        self._fields: list[FieldSpec] = []
        self._checks: tuple[BoundRule, ...] = ()

    @property
    def functions(self) -> FunctionTable:
        return self._functions

    def field(self, name: str | int, shape: Shape | type | None = None, *rules: RuleLike, **named: Any) -> SchemaBuilder:
        """Declare a field and compile it immediately.

        Rules given here are attached to the outermost level of ``shape``
        their function applies to; ``max_len`` on a sequence bounds the
        sequence, ``max`` on the same field bounds its elements.

        Args:
            name: Attribute or key name, or an int position
            shape: Field shape; a bare type means a typed scalar, ``None``
                an untyped scalar
            *rules: Rule declarations (``Rule``, ``(name, param)``, a bare
                name, or a ``{name: param}`` mapping)
            **named: Keyword rule declarations

        Returns:
            Self for chaining

        Raises:
            SchemaError: If the declaration is malformed
        """
        context = {"schema": self.name, "field": name}
        if any(spec.name == name for spec in self._fields):
            raise DuplicateFieldError(self.name, name)
        shape = self._as_shape(shape, context)
        for rule in self._coerce(rules, named, context):
            shape = self._place(shape, rule, context)
        node = self._compile(shape, context)
        self._fields.append(FieldSpec(name, node))
        logger.debug(f"Compiled field '{name}' of {self.name}: {node.describe()}")
        return self

    def check(self, *rules: RuleLike, **named: Any) -> SchemaBuilder:
        """Declare rules applied to the whole value after its fields."""
        context: Dict[str, Any] = {"schema": self.name}
        shape = Shape(FieldKind.NESTED, self._coerce(rules, named, context), target=self._target_type)
        self._checks = self._bind_rules(shape, context, self._checks)
        return self

    def with_description(self, description: str) -> SchemaBuilder:
        self._description = description
        return self

    def compile_shape(self, shape: Shape | type | None) -> Node:
        """Compile a standalone shape, e.g. a bare variant set used as a root."""
        context: Dict[str, Any] = {"schema": self.name}
        return self._compile(self._as_shape(shape, context), context)

    def build(self) -> Schema:
        """Produce the immutable schema and freeze the function table."""
        self._functions.freeze()
        schema = Schema(
            name=self.name,
            fields=tuple(self._fields),
            checks=self._checks,
            target_type=self._target_type,
            description=self._description,
        )
        logger.debug(f"Built schema {self.name} with {len(self._fields)} field(s)")
        return schema

    # -- helpers ------------------------------------------------------------

    def _as_shape(self, shape: Any, context: Dict[str, Any]) -> Shape:
        try:
            return as_shape(shape)
        except TypeError as e:
            raise SchemaError(f"{e} ({_where(context)})", context=dict(context)) from e

    def _coerce(self, rules: tuple, named: Dict[str, Any], context: Dict[str, Any]) -> tuple[Rule, ...]:
        try:
            return coerce_rules(rules, named)
        except TypeError as e:
            raise SchemaError(f"{e} ({_where(context)})", context=dict(context)) from e

    def _lookup(self, name: str, context: Dict[str, Any]) -> ConstraintFunction:
        if not self._functions.has(name):
            raise UnknownConstraintError(name, self._functions.list_keys(), context=dict(context))
        return self._functions.get(name)

    def _place(self, shape: Shape, rule: Rule, context: Dict[str, Any]) -> Shape:
        function = self._lookup(rule.name, context)
        placed = _place_rule(shape, rule, function)
        if placed is None:
            raise ConstraintTypeError(
                f"Constraint '{rule.name}' cannot apply to a {shape.describe()} field ({_where(context)})",
                context={**context, "constraint": rule.name, "kind": shape.kind.value},
            )
        return placed

    def _bind_rules(
        self,
        shape: Shape,
        context: Dict[str, Any],
        existing: tuple[BoundRule, ...] = (),
    ) -> tuple[BoundRule, ...]:
        bound = list(existing)
        for rule in shape.rules:
            function = self._lookup(rule.name, context)
            rule_context = {**context, "constraint": rule.name}
            if shape.kind not in function.applies_to:
                raise ConstraintTypeError(
                    f"Constraint '{rule.name}' cannot apply to a {shape.kind.value} value ({_where(context)})",
                    context={**rule_context, "kind": shape.kind.value},
                )
            param = rule.param
            if self._param_resolver is not None:
                param = self._param_resolver(function, param)
            if function.check_param is not None:
                problem = function.check_param(param, shape)
                if problem:
                    raise ConstraintTypeError(
                        f"Invalid parameter for '{rule.name}': {problem} ({_where(context)})",
                        context={**rule_context, "param": param},
                    )
            bound.append(BoundRule(function, param))
        _check_conflicts(bound, context)
        return tuple(bound)

    def _compile(self, shape: Shape, context: Dict[str, Any]) -> Node:
        rules = self._bind_rules(shape, context)
        kind = shape.kind

        if kind is FieldKind.SCALAR:
            if shape.python_type is not None and not isinstance(shape.python_type, type):
                raise SchemaError(
                    f"Scalar type must be a class, got {shape.python_type!r} ({_where(context)})",
                    context=dict(context),
                )
            return Node(kind, rules, python_type=shape.python_type)

        if kind in _WRAPPER_KINDS:
            inner = self._compile(shape.inner or as_shape(None), context)
            keys = self._compile(shape.keys, context) if shape.keys is not None else None
            return Node(kind, rules, inner=inner, keys=keys)

        if kind is FieldKind.NESTED:
            self._check_target(shape.target, context)
            return Node(kind, rules, target=shape.target)

        if not shape.variants:
            raise SchemaError(f"A variant field needs at least one variant ({_where(context)})", context=dict(context))
        compiled: dict[str, Node | None] = {}
        for name, payload in shape.variants.items():
            compiled[str(name)] = self._compile_variant(payload, {**context, "variant": name})
        return Node(kind, rules, variants=compiled, tag=shape.tag)

    def _compile_variant(self, payload: Any, context: Dict[str, Any]) -> Node | None:
        if payload is None:
            return None
        if isinstance(payload, Shape):
            return self._compile(payload, context)
        if isinstance(payload, type) and schema_of(payload) is None and payload is not self._target_type:
            return self._compile(as_shape(payload), context)
        self._check_target(payload, context)
        return Node(FieldKind.NESTED, target=payload)

    def _check_target(self, target: Any, context: Dict[str, Any]) -> None:
        if target is None:
            raise SchemaError(f"Nested field has no target ({_where(context)})", context=dict(context))
        if self._target_type is not None and target is self._target_type:
            return
        if schema_of(target) is None or not (isinstance(target, (Schema, type))):
            name = getattr(target, "__name__", repr(target))
            raise SchemaError(
                f"Nested target '{name}' has no validation schema ({_where(context)})",
                context={**context, "target": name},
            )


def _place_rule(shape: Shape, rule: Rule, function: ConstraintFunction) -> Shape | None:
    """Attach ``rule`` to the outermost level of ``shape`` it applies to."""
    if shape.kind in function.applies_to:
        return shape.with_rules(rule)
    if shape.kind in _WRAPPER_KINDS:
        placed = _place_rule(shape.inner or as_shape(None), rule, function)
        if placed is not None:
            return shape.with_inner(placed)
    return None


def _same_param(left: Any, right: Any) -> bool:
    return left is right or left == right


def _check_conflicts(rules: list[BoundRule], context: Dict[str, Any]) -> None:
    for position, rule in enumerate(rules):
        for earlier in rules[:position]:
            pair_context = {**context, "constraint": rule.name}
            if rule.name == earlier.name:
                if _same_param(rule.param, earlier.param):
                    raise ConflictingConstraintError(
                        f"Constraint '{rule.name}' is declared twice ({_where(context)})",
                        context={**pair_context, "param": rule.param},
                    )
                if rule.function.exclusive:
                    raise ConflictingConstraintError(
                        f"Conflicting values for '{rule.name}': {earlier.param!r} and {rule.param!r} ({_where(context)})",
                        context={**pair_context, "params": [earlier.param, rule.param]},
                    )
            _check_bounds(earlier, rule, context)


def _check_bounds(first: BoundRule, second: BoundRule, context: Dict[str, Any]) -> None:
    group = first.function.group
    if group is None or group != second.function.group:
        return
    bounds = {first.function.bound: first, second.function.bound: second}
    if set(bounds) != {"lower", "upper"}:
        return
    lower, upper = bounds["lower"], bounds["upper"]
    try:
        contradictory = lower.param > upper.param
    except TypeError as e:
        raise ConstraintTypeError(
            f"Bounds {lower.name}={lower.param!r} and {upper.name}={upper.param!r} are not comparable ({_where(context)})",
            context={**context, "lower": lower.param, "upper": upper.param},
        ) from e
    if contradictory:
        raise ConflictingConstraintError(
            f"{lower.name} ({lower.param!r}) is greater than {upper.name} ({upper.param!r}) ({_where(context)})",
            context={**context, "lower": lower.param, "upper": upper.param},
        )
