"""Declarative field shapes and constraint rules.

A ``Shape`` says what kind of value a field holds (a scalar, an optional
value, a sequence, a mapping, a nested structure, or one of several
variants) and which constraint rules apply at that level. Shapes are
uncompiled: ``SchemaBuilder`` resolves their rule names against a function
table and turns them into ``Node`` objects.

Example:
    ```python
    from dataknobs_validation import mapping, optional, scalar, sequence

    tags = sequence(scalar(str, max_len=20), max_len=5)
    retries = optional(scalar(int), option_min=0, option_max=5)
    scores = mapping(scalar(float, min=0.0, max=1.0), keys=scalar(str))
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Union


class FieldKind(str, Enum):
    """The closed set of value kinds the traversal dispatches on."""

    SCALAR = "scalar"
    OPTIONAL = "optional"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    NESTED = "nested"
    ENUM = "enum"


ALL_KINDS = frozenset(FieldKind)
# Kinds that always hold a present value once the traversal reaches them.
VALUE_KINDS = ALL_KINDS - {FieldKind.OPTIONAL}


@dataclass(frozen=True)
class Rule:
    """A declared constraint: a function name and its parameter."""

    name: str
    param: Any = None

    def __str__(self) -> str:
        return f"{self.name}={self.param!r}"


RuleLike = Union[Rule, str, tuple, Mapping]


def coerce_rules(rules: Iterable[RuleLike] = (), named: Mapping[str, Any] | None = None) -> tuple[Rule, ...]:
    """Normalize the accepted rule spellings into ``Rule`` objects.

    Accepts ``Rule`` instances, ``(name, param)`` pairs, bare names (no
    parameter), and ``{name: param}`` mappings (one rule per item, in
    order). Keyword rules in ``named`` follow the positional ones.

    Args:
        rules: Positional rule declarations
        named: Keyword rule declarations

    Returns:
        Rules in declaration order

    Raises:
        TypeError: If a declaration has none of the accepted forms
    """
    result: list[Rule] = []
    for rule in rules:
        if isinstance(rule, Rule):
            result.append(rule)
        elif isinstance(rule, str):
            result.append(Rule(rule))
        elif isinstance(rule, tuple) and len(rule) == 2 and isinstance(rule[0], str):
            result.append(Rule(rule[0], rule[1]))
        elif isinstance(rule, Mapping):
            result.extend(Rule(str(name), param) for name, param in rule.items())
        else:
            raise TypeError(f"Cannot interpret {rule!r} as a constraint rule")
    if named:
        result.extend(Rule(name, param) for name, param in named.items())
    return tuple(result)


@dataclass(frozen=True)
class Shape:
    """Uncompiled description of one level of a field.

    Only the attributes relevant to ``kind`` are set:

    - SCALAR: ``python_type`` (optional runtime type check)
    - OPTIONAL / SEQUENCE: ``inner``
    - MAPPING: ``inner`` for values, optional ``keys``
    - NESTED: ``target``, a ``Schema`` or a class carrying one
    - ENUM: ``variants`` (name -> payload) and ``tag``
    """

    kind: FieldKind
    rules: tuple[Rule, ...] = ()
    python_type: type | None = None
    inner: Shape | None = None
    keys: Shape | None = None
    target: Any = None
    variants: Mapping[str, Any] | None = None
    tag: str | Callable[[Any], str] | None = None

    def with_rules(self, *rules: Rule) -> Shape:
        return replace(self, rules=self.rules + rules)

    def with_inner(self, inner: Shape) -> Shape:
        return replace(self, inner=inner)

    def contains(self, *kinds: FieldKind) -> bool:
        """True if this shape or any shape below it has one of ``kinds``."""
        if self.kind in kinds:
            return True
        children = [self.inner, self.keys]
        return any(child is not None and child.contains(*kinds) for child in children)

    def has_rules(self) -> bool:
        """True if this shape or any shape below it carries rules."""
        if self.rules:
            return True
        children = [self.inner, self.keys, *(self.variants or {}).values()]
        return any(isinstance(child, Shape) and child.has_rules() for child in children)

    def describe(self) -> str:
        if self.kind is FieldKind.SCALAR:
            return self.python_type.__name__ if self.python_type else "scalar"
        if self.kind is FieldKind.NESTED:
            return f"nested {getattr(self.target, 'name', getattr(self.target, '__name__', self.target))}"
        if self.kind is FieldKind.ENUM:
            return f"one of {', '.join(self.variants or {})}"
        inner = self.inner.describe() if self.inner else "scalar"
        return f"{self.kind.value} of {inner}"


def as_shape(shape: Shape | type | None) -> Shape:
    """Accept a bare type wherever a shape is expected."""
    if shape is None:
        return scalar()
    if isinstance(shape, Shape):
        return shape
    if isinstance(shape, type):
        return scalar(shape)
    raise TypeError(f"Expected a Shape or a type, got {shape!r}")


def scalar(python_type: type | None = None, *rules: RuleLike, **named: Any) -> Shape:
    """A leaf value, optionally checked against ``python_type``."""
    return Shape(FieldKind.SCALAR, coerce_rules(rules, named), python_type=python_type)


def optional(inner: Shape | type | None = None, *rules: RuleLike, **named: Any) -> Shape:
    """A value that may be absent (``None`` or missing).

    Rules given here must be optional-aware (``option_min``, ``option_max``);
    plain rules belong on ``inner``.
    """
    return Shape(FieldKind.OPTIONAL, coerce_rules(rules, named), inner=as_shape(inner))


def sequence(items: Shape | type | None = None, *rules: RuleLike, **named: Any) -> Shape:
    """A list, tuple, set or other non-string collection of ``items``."""
    return Shape(FieldKind.SEQUENCE, coerce_rules(rules, named), inner=as_shape(items))


def mapping(
    values: Shape | type | None = None,
    *rules: RuleLike,
    keys: Shape | type | None = None,
    **named: Any,
) -> Shape:
    """A mapping whose values (and optionally keys) are validated."""
    return Shape(
        FieldKind.MAPPING,
        coerce_rules(rules, named),
        inner=as_shape(values),
        keys=as_shape(keys) if keys is not None else None,
    )


def nested(target: Any, *rules: RuleLike, **named: Any) -> Shape:
    """A structure validated by its own schema.

    Args:
        target: A ``Schema``, or a class decorated with ``@validatable``
    """
    return Shape(FieldKind.NESTED, coerce_rules(rules, named), target=target)


def variants(
    cases: Mapping[str, Any],
    *rules: RuleLike,
    tag: str | Callable[[Any], str] | None = None,
    **named: Any,
) -> Shape:
    """A sum-typed value: exactly one of ``cases`` is active.

    Each case maps a variant name to its payload description: ``None`` for
    a unit variant, a ``Schema`` or validatable class for a struct-like
    variant, or a ``Shape`` for a single-value variant.

    Args:
        cases: Variant name -> payload description
        tag: How to find the active variant; a key name for mapping input,
            or a callable returning the variant name. Defaults to the
            ``enum.Enum`` member name or the value's class name.
    """
    return Shape(FieldKind.ENUM, coerce_rules(rules, named), variants=dict(cases), tag=tag)
