"""Tests for construction-time rejection of malformed declarations."""

import pytest

from dataknobs_validation import (
    ConflictingConstraintError,
    ConstraintTypeError,
    DuplicateFieldError,
    FunctionTable,
    Rule,
    SchemaBuilder,
    SchemaError,
    UnknownConstraintError,
    mapping,
    nested,
    optional,
    scalar,
    sequence,
    variants,
)


class TestRejections:
    """Test each class of malformed declaration fails at declaration."""

    def test_unknown_constraint(self):
        """Test an unknown name fails with the field in context."""
        with pytest.raises(UnknownConstraintError) as exc_info:
            SchemaBuilder("user").field("age", int, minimum=18)
        assert exc_info.value.context["field"] == "age"
        assert exc_info.value.context["schema"] == "user"
        assert "min" in exc_info.value.available

    def test_parameter_type_mismatch(self):
        """Test a bound that does not type check against the field."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("age", int, min="ten")

    def test_constraint_on_wrong_kind(self):
        """Test a function that applies nowhere in the shape is rejected."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("flag", sequence(int), pattern="x")
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("n", int, option_min=1)

    def test_shape_rule_must_apply_to_its_node(self):
        """Test rules written on a shape are not moved elsewhere."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("tags", sequence(int, min=1))

    def test_length_on_unsized_scalar(self):
        """Test a length bound cannot apply to an int."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("n", int, max_len=3)

    def test_contradictory_bounds(self):
        """Test a lower bound above the upper bound is rejected."""
        with pytest.raises(ConflictingConstraintError) as exc_info:
            SchemaBuilder("s").field("age", int, min=10, max=5)
        assert exc_info.value.context["lower"] == 10
        with pytest.raises(ConflictingConstraintError):
            SchemaBuilder("s").field("name", str, min_len=4, max_len=2)

    def test_equal_bounds_allowed(self):
        """Test min == max is a valid declaration."""
        schema = SchemaBuilder("s").field("age", int, min=5, max=5).build()
        assert schema.validate({"age": 5}).valid

    def test_duplicate_rule(self):
        """Test the same rule twice on one field is rejected."""
        with pytest.raises(ConflictingConstraintError):
            SchemaBuilder("s").field("age", scalar(int, min=1), min=1)

    def test_conflicting_equal(self):
        """Test two different equal values on one field are rejected."""
        with pytest.raises(ConflictingConstraintError):
            SchemaBuilder("s").field("v", int, Rule("equal", 1), Rule("equal", 2))

    def test_uncomparable_untyped_bounds(self):
        """Test bounds of unrelated types on an untyped field are rejected."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("v", None, min=1, max="z")

    def test_duplicate_field(self):
        """Test declaring a field twice is rejected."""
        builder = SchemaBuilder("s").field("a", int)
        with pytest.raises(DuplicateFieldError):
            builder.field("a", str)

    def test_nested_without_schema(self):
        """Test a nested target must carry a schema."""

        class Plain:
            pass

        with pytest.raises(SchemaError):
            SchemaBuilder("s").field("p", nested(Plain))

    def test_bad_scalar_type_and_rule_form(self):
        """Test a non-type scalar type and an unreadable rule are rejected."""
        with pytest.raises(SchemaError):
            SchemaBuilder("s").field("a", scalar("int"))
        with pytest.raises(SchemaError):
            SchemaBuilder("s").field("a", int, 42)

    def test_empty_variants(self):
        """Test a variant field needs at least one variant."""
        with pytest.raises(SchemaError):
            SchemaBuilder("s").field("v", variants({}))

    def test_invalid_predicate(self):
        """Test a predicate parameter must be callable."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").field("v", int, predicate="not callable")

    def test_schema_check_kind(self):
        """Test schema-level checks only accept whole-value functions."""
        with pytest.raises(ConstraintTypeError):
            SchemaBuilder("s").check(min=1)

    def test_errors_are_schema_errors(self):
        """Test every construction failure is a SchemaError, never a result."""
        for declare in (
            lambda: SchemaBuilder("s").field("a", int, nope=1),
            lambda: SchemaBuilder("s").field("a", int, min=3, max=1),
            lambda: SchemaBuilder("s").field("a", int, min="x"),
        ):
            with pytest.raises(SchemaError):
                declare()


class TestPlacement:
    """Test where field-level rules land in a shape."""

    def test_outermost_applicable_node(self):
        """Test rules go to the outermost node whose kind they apply to."""
        schema = (
            SchemaBuilder("s")
            .field("m", optional(mapping(sequence(int))), max_len=2, max=9)
            .build()
        )
        node = schema.get_field("m").node
        assert node.rules == ()
        assert [rule.name for rule in node.inner.rules] == ["max_len"]
        assert [rule.name for rule in node.inner.inner.inner.rules] == ["max"]

    def test_param_resolver(self):
        """Test the resolver runs on each parameter before it is checked."""
        seen = []

        def resolver(function, param):
            seen.append(function.name)
            return int(param) if function.name == "min" else param

        schema = SchemaBuilder("s", param_resolver=resolver).field("n", int, min="3").build()
        assert seen == ["min"]
        assert schema.get_field("n").node.rules[0].param == 3

    def test_description_and_target(self):
        """Test builder metadata lands on the schema."""
        schema = SchemaBuilder("s", target_type=dict).with_description("things").build()
        assert schema.description == "things"
        assert schema.target_type is dict

    def test_custom_table_used(self):
        """Test names resolve only against the builder's own table."""
        table = FunctionTable.with_builtins()
        table.register_function("positive", lambda value, param: value > 0)
        SchemaBuilder("s", table).field("n", int, "positive")
        with pytest.raises(UnknownConstraintError):
            SchemaBuilder("s").field("n", int, "positive")
