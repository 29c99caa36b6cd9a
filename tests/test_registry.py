"""Tests for the constraint function table."""

import pytest
from dataknobs_common import DataknobsError, OperationError, Registry

from dataknobs_validation import (
    ConstraintFunction,
    FunctionTable,
    RegistrationError,
    SchemaBuilder,
    UnknownConstraintError,
    default_functions,
)


class TestFunctionTable:
    """Test registration and lookup."""

    def test_builtins_present(self, table):
        """Test a built-in table knows every built-in name."""
        for name in ("min", "max", "equal", "option_min", "option_max",
                     "min_len", "max_len", "predicate", "pattern", "one_of"):
            assert name in table
        assert table.count() == 10

    def test_register_and_get(self, table):
        """Test a registered function can be looked up."""
        function = ConstraintFunction("positive", lambda value, param: value > 0)
        table.register(function)
        assert table.get("positive") is function
        assert table.has("positive")

    def test_duplicate_rejected(self, table):
        """Test registering a taken name fails unless overwriting."""
        with pytest.raises(RegistrationError) as exc_info:
            table.register(ConstraintFunction("min", lambda value, param: True))
        assert exc_info.value.context["constraint"] == "min"
        table.register(ConstraintFunction("min", lambda value, param: True), allow_overwrite=True)

    def test_unknown_name(self, table):
        """Test lookup of an unknown name lists the available ones."""
        with pytest.raises(UnknownConstraintError) as exc_info:
            table.get("minimum")
        assert "min" in exc_info.value.context["available"]

    def test_decorator(self, table):
        """Test the decorator registers under the function name."""

        @table.function()
        def even(value, _param):
            """value is even"""
            return value % 2 == 0

        assert table.get("even").description == "value is even"
        assert even(2, None) is True

    def test_register_function_options(self, table):
        """Test register_function passes metadata through."""
        function = table.register_function("at_least", lambda value, param: value >= param, bound="lower", group="g")
        assert function.bound == "lower"
        assert function.group == "g"


class TestFreezing:
    """Test the table is frozen once a schema uses it."""

    def test_build_freezes(self, table):
        """Test building a schema closes the table."""
        SchemaBuilder("s", table).field("a", int, min=0).build()
        assert table.frozen
        with pytest.raises(RegistrationError):
            table.register_function("late", lambda value, param: True)

    def test_copy_is_open(self, table):
        """Test a copy of a frozen table accepts registrations."""
        table.freeze()
        extended = table.copy("extended")
        extended.register_function("late", lambda value, param: True)
        assert "late" in extended
        assert "late" not in table

    def test_default_table_shared_and_frozen(self):
        """Test the default table is a frozen singleton."""
        assert default_functions() is default_functions()
        assert default_functions().frozen

    def test_frozen_table_rejects_removal(self, table):
        """Test a frozen table cannot lose functions either."""
        table.freeze()
        with pytest.raises(RegistrationError):
            table.unregister("min")
        with pytest.raises(RegistrationError):
            table.clear()
        assert table.count() == 10


class TestCommonRegistry:
    """Test the table behaves as a dataknobs_common Registry."""

    def test_is_registry(self, table):
        """Test the table is a Registry keyed by function name."""
        assert isinstance(table, Registry)
        assert table.name == "test"
        assert table.list_keys()[:2] == ["min", "max"]
        assert table.get_optional("minimum") is None
        assert [function.name for function in table][:2] == ["min", "max"]

    def test_errors_extend_common_hierarchy(self, table):
        """Test registration and lookup errors are DataknobsErrors."""
        with pytest.raises(OperationError):
            table.register(ConstraintFunction("min", lambda value, param: True))
        with pytest.raises(DataknobsError):
            table.get("minimum")

    def test_open_table_unregister(self, table):
        """Test an open table can drop a function."""
        removed = table.unregister("pattern")
        assert removed.name == "pattern"
        assert "pattern" not in table
