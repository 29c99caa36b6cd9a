"""Validation failure records, their aggregate, and the result type.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, overload

from .path import Path, PathSegment, format_path


@dataclass(frozen=True)
class ValidationError:
    """A single constraint violation found in a value.

    This is a data record, not an exception. It is created by the traversal
    at the moment a constraint fails; the constraint supplies ``kind`` and
    ``context`` and the traversal supplies ``path``.

    Attributes:
        kind: Name of the violated constraint (``"min"``, ``"required"``, ...)
        context: Read-only detail; always contains ``"message"``
        path: Where in the value the violation occurred (empty for the root)
    """

    kind: str
    context: Mapping[str, Any] = field(default_factory=dict, hash=False)
    path: Path = ()

    def __post_init__(self) -> None:
        context = dict(self.context)
        context.setdefault("message", f"constraint '{self.kind}' failed")
        object.__setattr__(self, "context", MappingProxyType(context))
        object.__setattr__(self, "path", tuple(self.path))

    @property
    def message(self) -> str:
        return str(self.context["message"])

    def prefixed(self, *segments: PathSegment) -> ValidationError:
        """Return a copy whose path starts with ``segments``."""
        if not segments:
            return self
        return replace(self, path=tuple(segments) + self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": [segment.to_dict() for segment in self.path],
            "kind": self.kind,
            "context": dict(self.context),
        }

    def __str__(self) -> str:
        location = format_path(self.path) or "<root>"
        return f"{location}: {self.message}"


class ErrorCollection(Sequence[ValidationError]):
    """Ordered, append-only collection of validation errors.

    Errors keep the order in which the traversal discovered them and are
    never deduplicated or dropped. ``is_empty()`` is the success predicate.
    """

    __slots__ = ("_errors",)

    def __init__(self, errors: Iterable[ValidationError] = ()):
        self._errors: list[ValidationError] = list(errors)

    def append(self, error: ValidationError) -> None:
        self._errors.append(error)

    def extend(self, errors: Iterable[ValidationError]) -> None:
        self._errors.extend(errors)

    def is_empty(self) -> bool:
        return not self._errors

    def at(self, *segments: PathSegment) -> list[ValidationError]:
        """Errors located exactly at the given path."""
        return [error for error in self._errors if error.path == segments]

    def kinds(self) -> list[str]:
        return [error.kind for error in self._errors]

    def to_list(self) -> list[dict[str, Any]]:
        """Serializable form of every error, in discovery order."""
        return [error.to_dict() for error in self._errors]

    @overload
    def __getitem__(self, index: int) -> ValidationError: ...

    @overload
    def __getitem__(self, index: slice) -> list[ValidationError]: ...

    def __getitem__(self, index: int | slice) -> ValidationError | list[ValidationError]:
        return self._errors[index]

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[ValidationError]:
        return iter(self._errors)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCollection):
            return self._errors == other._errors
        if isinstance(other, (list, tuple)):
            return self._errors == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"ErrorCollection({self._errors!r})"

    def __str__(self) -> str:
        return "\n".join(str(error) for error in self._errors)


@dataclass
class ValidationResult:
    """Outcome of validating one value.

    ``valid`` is true exactly when ``errors`` is empty. A failed result
    always carries the complete set of errors found by the traversal.
    """

    valid: bool
    value: Any
    errors: ErrorCollection = field(default_factory=ErrorCollection)

    def __bool__(self) -> bool:
        """Allow 'if result:' usage to check validity."""
        return self.valid

    @classmethod
    def success(cls, value: Any) -> ValidationResult:
        """Create a successful validation result.

        Args:
            value: The validated value

        Returns:
            Successful ValidationResult with no errors
        """
        return cls(valid=True, value=value, errors=ErrorCollection())

    @classmethod
    def failure(cls, value: Any, errors: Iterable[ValidationError]) -> ValidationResult:
        """Create a failed validation result.

        Args:
            value: The value that failed validation
            errors: The violations found; must not be empty

        Returns:
            Failed ValidationResult

        Raises:
            ValueError: If ``errors`` is empty
        """
        collection = errors if isinstance(errors, ErrorCollection) else ErrorCollection(errors)
        if collection.is_empty():
            raise ValueError("A failed ValidationResult needs at least one error")
        return cls(valid=False, value=value, errors=collection)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": self.errors.to_list()}


class ErrorBuilder:
    """Accumulates errors for one validation pass.

    Holds the in-progress ``ErrorCollection`` and the current path prefix.
    Nested traversal enters a location with one of the ``at_*`` context
    managers; the segment is popped again however the block exits.

    Example:
        ```python
        eb = ErrorBuilder()
        with eb.at_field("items"):
            for i, item in enumerate(items):
                with eb.at_index(i):
                    if item < 0:
                        eb.report("min", {"message": f"{item} is less than 0"})
        result = eb.build(items)
        ```
    """

    def __init__(self) -> None:
        self._errors = ErrorCollection()
        self._path: list[PathSegment] = []

    @property
    def path(self) -> Path:
        return tuple(self._path)

    @contextmanager
    def at(self, segment: PathSegment) -> Iterator[ErrorBuilder]:
        self._path.append(segment)
        try:
            yield self
        finally:
            self._path.pop()

    def at_field(self, name: str) -> AbstractContextManager[ErrorBuilder]:
        return self.at(PathSegment.field(name))

    def at_index(self, position: int) -> AbstractContextManager[ErrorBuilder]:
        return self.at(PathSegment.index(position))

    def at_key(self, key: Any) -> AbstractContextManager[ErrorBuilder]:
        return self.at(PathSegment.key(key))

    def at_variant(self, name: str) -> AbstractContextManager[ErrorBuilder]:
        return self.at(PathSegment.variant(name))

    def report(self, kind: str, context: Mapping[str, Any] | None = None) -> ErrorBuilder:
        """Record a violation at the current path."""
        self._errors.append(ValidationError(kind, context or {}, self.path))
        return self

    def include(self, errors: ValidationResult | Iterable[ValidationError]) -> ErrorBuilder:
        """Record errors produced elsewhere, re-rooted at the current path.

        Args:
            errors: A ValidationResult or any iterable of ValidationErrors

        Returns:
            Self for chaining
        """
        if isinstance(errors, ValidationResult):
            errors = errors.errors
        prefix = self.path
        self._errors.extend(error.prefixed(*prefix) for error in errors)
        return self

    def contains_errors(self) -> bool:
        return not self._errors.is_empty()

    @property
    def errors(self) -> ErrorCollection:
        return self._errors

    def build(self, value: Any = None) -> ValidationResult:
        """Produce the result: success when nothing was reported."""
        if self._errors.is_empty():
            return ValidationResult.success(value)
        return ValidationResult.failure(value, self._errors)
