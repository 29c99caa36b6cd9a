"""Constraint functions: the built-in set and the shape of custom ones.

A constraint function receives a field value and the parameter declared for
it, and reports a failure by returning something other than ``None``/``True``.
It never knows where in the structure the value lives; the traversal
attaches the path.

Custom functions use the same shape and are registered in a
``FunctionTable`` (see ``dataknobs_validation.registry``):

    ```python
    from dataknobs_validation import ConstraintFunction, FieldKind

    def divisible_by(value, divisor):
        if value % divisor:
            return {"message": f"{value} is not divisible by {divisor}", "bound": divisor}
        return None

    table.register(ConstraintFunction(
        "divisible_by", divisible_by, applies_to=frozenset({FieldKind.SCALAR})
    ))
    ```
"""

from __future__ import annotations

import logging
import math
import numbers
import re
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from .result import ValidationResult
from .shapes import VALUE_KINDS, FieldKind

if TYPE_CHECKING:
    from .shapes import Shape

logger = logging.getLogger(__name__)

FailureDetail = dict[str, Any]


@dataclass(frozen=True)
class ConstraintFunction:
    """A named, parameterized check.

    Attributes:
        name: Name used in declarations and as the ``kind`` of its errors
        func: ``func(value, param)``; returns ``None``/``True`` on success, or
            ``False``, a message string, a context mapping, or a failed
            ``ValidationResult`` on failure
        applies_to: Field kinds the function may be attached to
        check_param: ``check_param(param, shape)`` returns a description of
            what is wrong with a declared parameter, or ``None``
        bound: ``"lower"`` or ``"upper"`` for bound-style functions
        group: Bounds in the same group on one field must not contradict
        exclusive: Only one distinct parameter may be declared per field
        callable_param: The parameter is a function (lets configuration
            sources name it by import path)
        description: Short human-readable summary
    """

    name: str
    func: Callable[[Any, Any], Any]
    applies_to: frozenset[FieldKind] = VALUE_KINDS
    check_param: Callable[[Any, Shape], str | None] | None = None
    bound: str | None = None
    group: str | None = None
    exclusive: bool = False
    callable_param: bool = False
    description: str = ""

    def evaluate(self, value: Any, param: Any) -> FailureDetail | ValidationResult | None:
        """Run the function and normalize its outcome.

        Returns:
            ``None`` when the constraint holds, a failed ``ValidationResult``
            to be included as-is, or the failure context
        """
        try:
            outcome = self.func(value, param)
        except Exception as e:
            logger.debug(f"Constraint '{self.name}' raised {type(e).__name__}: {e}")
            return {
                "message": f"constraint '{self.name}' raised {type(e).__name__}: {e}",
                "exception": type(e).__name__,
            }

        if outcome is None or outcome is True:
            return None
        if outcome is False:
            return {"message": f"constraint '{self.name}' failed"}
        if isinstance(outcome, str):
            return {"message": outcome}
        if isinstance(outcome, ValidationResult):
            return None if outcome.valid else outcome
        if isinstance(outcome, Mapping):
            return dict(outcome)
        return {"message": f"constraint '{self.name}' returned unexpected {type(outcome).__name__}"}


# -- parameter checks (run when a schema is built) --------------------------

def _declared_type(shape: Shape) -> type | None:
    """The scalar type a rule on ``shape`` will see, if one is declared."""
    while shape is not None and shape.kind is FieldKind.OPTIONAL:
        shape = shape.inner
    if shape is not None and shape.kind is FieldKind.SCALAR:
        return shape.python_type
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (numbers.Real, Decimal)) and not isinstance(value, bool)


def _matches_declared(param: Any, python_type: type | None) -> bool:
    if python_type is None:
        return True
    if python_type is bool:
        return isinstance(param, bool)
    if issubclass(python_type, (numbers.Number, Decimal)):
        return _is_number(param)
    return isinstance(param, python_type)


def _check_ordinal(param: Any, shape: Shape) -> str | None:
    if param is None:
        return "bound must not be None"
    python_type = _declared_type(shape)
    if not _matches_declared(param, python_type):
        return f"bound {param!r} is not comparable with {python_type.__name__}"
    try:
        param < param
    except TypeError:
        return f"bound {param!r} of type {type(param).__name__} is not orderable"
    return None


def _check_equal(param: Any, shape: Shape) -> str | None:
    python_type = _declared_type(shape)
    if not _matches_declared(param, python_type):
        return f"expected value {param!r} does not match {python_type.__name__}"
    return None


def _check_length(param: Any, shape: Shape) -> str | None:
    if not isinstance(param, int) or isinstance(param, bool) or param < 0:
        return f"length bound must be a non-negative int, got {param!r}"
    python_type = _declared_type(shape)
    if shape.kind is FieldKind.SCALAR and python_type is not None and not hasattr(python_type, "__len__"):
        return f"values of type {python_type.__name__} have no length"
    return None


def _check_predicate(param: Any, shape: Shape) -> str | None:
    if callable(param):
        return None
    if isinstance(param, tuple) and len(param) == 2 and callable(param[0]) and isinstance(param[1], str):
        return None
    return "predicate must be a callable or a (callable, message) pair"


def _check_pattern(param: Any, shape: Shape) -> str | None:
    if isinstance(param, re.Pattern):
        pass
    elif isinstance(param, str):
        try:
            re.compile(param)
        except re.error as e:
            return f"invalid regular expression {param!r}: {e}"
    else:
        return "pattern must be a string or a compiled regular expression"
    python_type = _declared_type(shape)
    if python_type is not None and not issubclass(python_type, str):
        return f"pattern cannot apply to values of type {python_type.__name__}"
    return None


def _check_one_of(param: Any, shape: Shape) -> str | None:
    if isinstance(param, (str, bytes)) or not isinstance(param, Collection) or not param:
        return "one_of needs a non-empty collection of allowed values"
    return None


# -- built-in functions -----------------------------------------------------

def _compare(value: Any, bound: Any, name: str) -> FailureDetail | None:
    detail: FailureDetail = {"bound": bound, "actual": str(value)}
    if isinstance(value, float) and math.isnan(value):
        detail["message"] = "value is NaN, which cannot be compared"
        return detail
    try:
        if name == "min" and value < bound:
            detail["message"] = f"{value} is less than {bound}"
            return detail
        if name == "max" and value > bound:
            detail["message"] = f"{value} is greater than {bound}"
            return detail
    except TypeError:
        detail["message"] = f"cannot compare {type(value).__name__} with {type(bound).__name__}"
        return detail
    return None


def min_value(value: Any, bound: Any) -> FailureDetail | None:
    """Fail when ``value < bound``."""
    return _compare(value, bound, "min")


def max_value(value: Any, bound: Any) -> FailureDetail | None:
    """Fail when ``value > bound``."""
    return _compare(value, bound, "max")


def equal(value: Any, expected: Any) -> FailureDetail | None:
    if value == expected:
        return None
    return {"message": f"{value} != {expected}", "expected": expected, "actual": str(value)}


def option_min(value: Any, bound: Any) -> FailureDetail | None:
    """``min`` for optional values; an absent value always passes."""
    if value is None:
        return None
    return _compare(value, bound, "min")


def option_max(value: Any, bound: Any) -> FailureDetail | None:
    """``max`` for optional values; an absent value always passes."""
    if value is None:
        return None
    return _compare(value, bound, "max")


def _length(value: Any) -> int | None:
    try:
        return len(value)
    except TypeError:
        return None


def min_len(value: Any, bound: int) -> FailureDetail | None:
    length = _length(value)
    if length is None:
        return {"message": f"value of type {type(value).__name__} has no length", "bound": bound}
    if length < bound:
        return {
            "message": f"value does not have enough elements, it has {length} but the minimum is {bound}",
            "bound": bound,
            "actual": length,
        }
    return None


def max_len(value: Any, bound: int) -> FailureDetail | None:
    length = _length(value)
    if length is None:
        return {"message": f"value of type {type(value).__name__} has no length", "bound": bound}
    if length > bound:
        return {
            "message": f"value has too many elements, it has {length} but the maximum is {bound}",
            "bound": bound,
            "actual": length,
        }
    return None


def predicate(value: Any, param: Any) -> FailureDetail | None:
    """Delegate to a user function; its truthiness decides.

    The parameter is the function, or a ``(function, message)`` pair. Without
    a message one is synthesized from the function's name.
    """
    if isinstance(param, tuple):
        func, message = param
    else:
        func, message = param, None
    if func(value):
        return None
    name = getattr(func, "__name__", "predicate")
    return {"message": message or f'predicate "{name}" failed', "predicate": name}


def pattern(value: Any, regex: str | re.Pattern) -> FailureDetail | None:
    if not isinstance(value, str):
        return {"message": f"value must be a string for pattern matching, got {type(value).__name__}"}
    compiled = re.compile(regex) if isinstance(regex, str) else regex
    if compiled.match(value):
        return None
    return {
        "message": f"'{value}' does not match pattern '{compiled.pattern}'",
        "expected": compiled.pattern,
        "actual": value,
    }


def one_of(value: Any, allowed: Collection[Any]) -> FailureDetail | None:
    if value in allowed:
        return None
    listed = ", ".join(repr(item) for item in allowed)
    return {"message": f"{value!r} is not one of: {listed}", "expected": list(allowed), "actual": str(value)}


SCALAR_ONLY = frozenset({FieldKind.SCALAR})
SIZED_KINDS = frozenset({FieldKind.SCALAR, FieldKind.SEQUENCE, FieldKind.MAPPING})
OPTIONAL_ONLY = frozenset({FieldKind.OPTIONAL})

BUILTIN_FUNCTIONS: tuple[ConstraintFunction, ...] = (
    ConstraintFunction(
        "min", min_value, SCALAR_ONLY, _check_ordinal, bound="lower", group="value",
        description="value >= bound",
    ),
    ConstraintFunction(
        "max", max_value, SCALAR_ONLY, _check_ordinal, bound="upper", group="value",
        description="value <= bound",
    ),
    ConstraintFunction(
        "equal", equal, VALUE_KINDS, _check_equal, exclusive=True,
        description="value == expected",
    ),
    ConstraintFunction(
        "option_min", option_min, OPTIONAL_ONLY, _check_ordinal, bound="lower", group="value",
        description="absent, or value >= bound",
    ),
    ConstraintFunction(
        "option_max", option_max, OPTIONAL_ONLY, _check_ordinal, bound="upper", group="value",
        description="absent, or value <= bound",
    ),
    ConstraintFunction(
        "min_len", min_len, SIZED_KINDS, _check_length, bound="lower", group="length",
        description="len(value) >= bound",
    ),
    ConstraintFunction(
        "max_len", max_len, SIZED_KINDS, _check_length, bound="upper", group="length",
        description="len(value) <= bound",
    ),
    ConstraintFunction(
        "predicate", predicate, VALUE_KINDS, _check_predicate, callable_param=True,
        description="func(value) is truthy",
    ),
    ConstraintFunction(
        "pattern", pattern, SCALAR_ONLY, _check_pattern,
        description="value matches a regular expression",
    ),
    ConstraintFunction(
        "one_of", one_of, SCALAR_ONLY, _check_one_of, exclusive=True,
        description="value is in an allowed collection",
    ),
)
