"""Structural locations inside a validated value.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class SegmentKind(str, Enum):
    """The kind of step a path segment takes into a value."""

    FIELD = "field"
    INDEX = "index"
    KEY = "key"
    VARIANT = "variant"


@dataclass(frozen=True)
class PathSegment:
    """One step from a value into one of its parts.

    A field of a structure, a position in a sequence, a key of a mapping,
    or the active variant of a sum-typed value. An ordered tuple of segments
    forms a path; the empty tuple is the root value itself.
    """

    kind: SegmentKind
    value: Any

    @classmethod
    def field(cls, name: str) -> PathSegment:
        return cls(SegmentKind.FIELD, name)

    @classmethod
    def index(cls, position: int) -> PathSegment:
        return cls(SegmentKind.INDEX, position)

    @classmethod
    def key(cls, key: Any) -> PathSegment:
        return cls(SegmentKind.KEY, key)

    @classmethod
    def variant(cls, name: str) -> PathSegment:
        return cls(SegmentKind.VARIANT, name)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form, e.g. ``{"field": "age"}`` or ``{"index": 2}``.

        Mapping keys are rendered with ``str`` so the result stays JSON
        friendly whatever the key type.
        """
        if self.kind is SegmentKind.KEY:
            return {self.kind.value: str(self.value)}
        return {self.kind.value: self.value}

    def __str__(self) -> str:
        if self.kind is SegmentKind.FIELD:
            return str(self.value)
        if self.kind is SegmentKind.INDEX:
            return f"[{self.value}]"
        if self.kind is SegmentKind.KEY:
            return f"[{self.value!r}]"
        return f"<{self.value}>"


Path = tuple[PathSegment, ...]


def format_path(path: Iterable[PathSegment]) -> str:
    """Render a path as ``outer.items[1]['key']<Variant>.field``.

    Args:
        path: Segments from the root outwards

    Returns:
        Dotted path string; empty string for the root
    """
    parts: list[str] = []
    for segment in path:
        text = str(segment)
        if segment.kind is SegmentKind.FIELD and parts:
            parts.append(".")
        parts.append(text)
    return "".join(parts)
