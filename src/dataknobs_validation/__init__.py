"""Declarative validation of in-memory data structures.

Validation walks a value against a compiled schema and reports every
violation it finds, each with the structural path to the offending value:
- Per-field constraint rules, compiled and checked when a schema is declared
- Scalars, optional values, collections, mappings, nested structures and
  variant (sum-typed) values
- Built-in and custom constraint functions dispatched through one table
- Schemas from builders, ``@validatable`` classes or YAML/JSON configuration
"""

from .compiler import SchemaBuilder
from .exceptions import (
    ConfigurationError,
    ConflictingConstraintError,
    ConstraintTypeError,
    DuplicateFieldError,
    NotFoundError,
    RegistrationError,
    SchemaError,
    SchemaNotFoundError,
    UnknownConstraintError,
    ValidationEngineError,
)
from .factory import SchemaFactory, load_schemas
from .functions import BUILTIN_FUNCTIONS, ConstraintFunction
from .path import PathSegment, SegmentKind, format_path
from .registry import FunctionTable, default_functions
from .result import ErrorBuilder, ErrorCollection, ValidationError, ValidationResult
from .schema import FieldSpec, Node, Schema, schema_of
from .shapes import (
    FieldKind,
    Rule,
    Shape,
    mapping,
    nested,
    optional,
    scalar,
    sequence,
    variants,
)
from .validatable import constrained, infer_shape, rules, validatable, validate

__version__ = "0.1.0"

__all__ = [
    # Result types
    "ValidationError",
    "ValidationResult",
    "ErrorCollection",
    "ErrorBuilder",
    "PathSegment",
    "SegmentKind",
    "format_path",
    # Constraint functions
    "ConstraintFunction",
    "BUILTIN_FUNCTIONS",
    "FunctionTable",
    "default_functions",
    # Shapes
    "FieldKind",
    "Rule",
    "Shape",
    "scalar",
    "optional",
    "sequence",
    "mapping",
    "nested",
    "variants",
    # Schema
    "Schema",
    "FieldSpec",
    "Node",
    "SchemaBuilder",
    "schema_of",
    # Declarative classes
    "validatable",
    "constrained",
    "rules",
    "infer_shape",
    "validate",
    # Configuration
    "SchemaFactory",
    "load_schemas",
    # Exceptions
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
