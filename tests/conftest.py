"""Pytest configuration for dataknobs_validation tests."""

import sys
from pathlib import Path

import pytest

# Add the package source to path for testing
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from dataknobs_validation import FunctionTable, SchemaBuilder, optional, sequence  # noqa: E402


@pytest.fixture
def table():
    """An open function table with the built-ins registered."""
    return FunctionTable.with_builtins("test")


@pytest.fixture
def user_schema():
    """A small schema exercising scalar, optional and sequence fields."""
    return (
        SchemaBuilder("user")
        .field("name", str, min_len=1, max_len=20)
        .field("age", int, min=0, max=150)
        .field("nickname", optional(str), max_len=8)
        .field("tags", sequence(str), max_len=3)
        .build()
    )
