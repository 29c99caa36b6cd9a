"""Tests for the built-in constraint functions."""

import math
import re

from dataknobs_validation import BUILTIN_FUNCTIONS, ConstraintFunction, ErrorBuilder, ValidationResult, scalar
from dataknobs_validation.functions import (
    equal,
    max_len,
    max_value,
    min_len,
    min_value,
    one_of,
    option_max,
    option_min,
    pattern,
    predicate,
)
from dataknobs_validation.shapes import FieldKind, optional, sequence


def builtin(name):
    return next(function for function in BUILTIN_FUNCTIONS if function.name == name)


class TestBounds:
    """Test min/max and their optional forms."""

    def test_min(self):
        """Test the lower bound is inclusive."""
        assert min_value(5, 5) is None
        detail = min_value(4, 5)
        assert detail["bound"] == 5
        assert detail["actual"] == "4"
        assert "less than" in detail["message"]

    def test_max(self):
        """Test the upper bound is inclusive."""
        assert max_value(10, 10) is None
        assert "greater than" in max_value(11, 10)["message"]

    def test_nan_fails(self):
        """Test NaN never satisfies a bound."""
        assert min_value(math.nan, 0.0) is not None
        assert max_value(math.nan, 0.0) is not None

    def test_uncomparable_value_reports_instead_of_raising(self):
        """Test comparing incompatible types is a failure, not an exception."""
        detail = min_value("abc", 3)
        assert "cannot compare" in detail["message"]

    def test_option_bounds(self):
        """Test absent values pass and present ones are bounded."""
        assert option_min(None, 3) is None
        assert option_max(None, 3) is None
        assert option_min(2, 3) is not None
        assert option_max(4, 3) is not None
        assert option_min(3, 3) is None


class TestLengths:
    """Test min_len/max_len."""

    def test_counts_elements(self):
        """Test length bounds look at the element count only."""
        assert min_len([1, 2], 2) is None
        assert min_len("a", 2)["actual"] == 1
        detail = max_len([1, 2, 3], 2)
        assert detail["message"] == "value has too many elements, it has 3 but the maximum is 2"
        assert detail["bound"] == 2

    def test_unsized_value(self):
        """Test a value without a length fails descriptively."""
        assert "has no length" in max_len(3, 1)["message"]


class TestOtherBuiltins:
    """Test equal, predicate, pattern and one_of."""

    def test_equal(self):
        """Test equality and its failure context."""
        assert equal(2, 2) is None
        detail = equal(3, 2)
        assert detail["expected"] == 2
        assert detail["actual"] == "3"

    def test_predicate_synthesized_message(self):
        """Test the message names the predicate function."""

        def is_even(value):
            return value % 2 == 0

        assert predicate(2, is_even) is None
        assert predicate(3, is_even)["message"] == 'predicate "is_even" failed'

    def test_predicate_fixed_message(self):
        """Test a (function, message) pair uses the given message."""
        assert predicate(3, (lambda v: v > 5, "too small"))["message"] == "too small"

    def test_pattern(self):
        """Test matching against strings and compiled patterns."""
        assert pattern("abc", r"^[a-z]+$") is None
        assert pattern("ab1", re.compile(r"^[a-z]+$")) is not None
        assert "must be a string" in pattern(5, r".*")["message"]

    def test_one_of(self):
        """Test membership in the allowed values."""
        assert one_of("red", ["red", "blue"]) is None
        assert one_of("green", ["red", "blue"])["expected"] == ["red", "blue"]


class TestEvaluate:
    """Test outcome normalization of ConstraintFunction.evaluate."""

    def test_outcomes(self):
        """Test every accepted return form."""
        cases = {
            None: None,
            True: None,
            False: {"message": "constraint 'f' failed"},
            "bad": {"message": "bad"},
        }
        for outcome, expected in cases.items():
            function = ConstraintFunction("f", lambda value, param, o=outcome: o)
            assert function.evaluate(1, None) == expected

    def test_mapping_outcome(self):
        """Test a mapping becomes the failure context."""
        function = ConstraintFunction("f", lambda value, param: {"message": "m", "bound": param})
        assert function.evaluate(1, 7) == {"message": "m", "bound": 7}

    def test_validation_result_outcome(self):
        """Test a failed result is passed through and a valid one passes."""
        failed = ErrorBuilder().report("inner").build()
        function = ConstraintFunction("f", lambda value, param: param)
        assert function.evaluate(1, failed) is failed
        assert function.evaluate(1, ValidationResult.success(1)) is None

    def test_exception_becomes_failure(self):
        """Test an exception raised by a function is reported, not propagated."""
        function = ConstraintFunction("f", lambda value, param: 1 / 0)
        detail = function.evaluate(1, None)
        assert detail["exception"] == "ZeroDivisionError"
        assert "ZeroDivisionError" in detail["message"]


class TestParamChecks:
    """Test declaration-time parameter checks of the built-ins."""

    def test_numeric_bound_on_int(self):
        """Test numeric bounds are accepted for numeric fields, bools are not."""
        check = builtin("min").check_param
        assert check(0, scalar(int)) is None
        assert check(0.5, scalar(int)) is None
        assert check("0", scalar(int)) is not None
        assert check(True, scalar(int)) is not None

    def test_untyped_bound_must_be_orderable(self):
        """Test an untyped field accepts any orderable bound."""
        check = builtin("max").check_param
        assert check("m", scalar()) is None
        assert check(object(), scalar()) is not None
        assert check(None, scalar()) is not None

    def test_option_bound_uses_inner_type(self):
        """Test optional bounds check against the wrapped type."""
        check = builtin("option_min").check_param
        assert check(1, optional(int)) is None
        assert check("1", optional(int)) is not None

    def test_length_bound(self):
        """Test length bounds need a non-negative int and a sized field."""
        check = builtin("max_len").check_param
        assert check(3, sequence(int)) is None
        assert check(-1, sequence(int)) is not None
        assert check(2.0, scalar(str)) is not None
        assert check(2, scalar(int)) is not None

    def test_pattern_param(self):
        """Test pattern parameters must compile and target strings."""
        check = builtin("pattern").check_param
        assert check(r"^a$", scalar(str)) is None
        assert check("(", scalar(str)) is not None
        assert check(r"^a$", scalar(int)) is not None

    def test_applicability(self):
        """Test the kinds each built-in may be attached to."""
        assert builtin("min").applies_to == {FieldKind.SCALAR}
        assert builtin("option_max").applies_to == {FieldKind.OPTIONAL}
        assert FieldKind.SEQUENCE in builtin("max_len").applies_to
        assert FieldKind.OPTIONAL not in builtin("predicate").applies_to
