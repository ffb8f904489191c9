"""Schema node tree produced from declared types.

Nodes are frozen dataclasses; a tree is built once per declared type and
never mutated afterwards.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Union


class PrimitiveKind(str, Enum):
    """Scalar kinds a :class:`Primitive` node can check."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Constraints:
    """Constraints attached from documentation tags. ``None`` means unset."""

    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    min_items: int | None = None
    max_items: int | None = None
    pattern: str | None = None
    format: str | None = None
    integer: bool = False
    multiple_of: float | None = None
    unique_items: bool = False

    def is_empty(self) -> bool:
        return self == Constraints()


@dataclass(frozen=True)
class Primitive:
    kind: PrimitiveKind
    constraints: Constraints = field(default_factory=Constraints)
    description: str | None = None


@dataclass(frozen=True)
class ObjectNode:
    """Structure with named fields; ``open`` objects accept arbitrary keys."""

    fields: Mapping[str, "SchemaNode"] = field(default_factory=dict)
    required: frozenset[str] = frozenset()
    open: bool = False
    title: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "required", frozenset(self.required))


@dataclass(frozen=True)
class ArrayNode:
    element: "SchemaNode"
    constraints: Constraints = field(default_factory=Constraints)
    description: str | None = None


@dataclass(frozen=True)
class EnumNode:
    literals: tuple[Any, ...]
    description: str | None = None


@dataclass(frozen=True)
class UnionNode:
    options: tuple["SchemaNode", ...]
    description: str | None = None


@dataclass(frozen=True)
class OptionalNode:
    """A value that may be absent (or ``None``)."""

    inner: "SchemaNode"
    description: str | None = None


@dataclass(frozen=True)
class AnyNode:
    """Accepts any value. ``reason`` is set when the schema was degraded."""

    reason: str | None = None
    description: str | None = None


SchemaNode = Union[Primitive, ObjectNode, ArrayNode, EnumNode, UnionNode, OptionalNode, AnyNode]


def unwrap_optional(node: SchemaNode) -> SchemaNode:
    while isinstance(node, OptionalNode):
        node = node.inner
    return node


def _constraint_keywords(node: Primitive | ArrayNode) -> dict[str, Any]:
    c = node.constraints
    schema: dict[str, Any] = {}
    if isinstance(node, ArrayNode):
        if c.min_items is not None:
            schema["minItems"] = c.min_items
        if c.max_items is not None:
            schema["maxItems"] = c.max_items
        if c.unique_items:
            schema["uniqueItems"] = True
        return schema

    if node.kind == PrimitiveKind.STRING:
        if c.min_length is not None:
            schema["minLength"] = c.min_length
        if c.max_length is not None:
            schema["maxLength"] = c.max_length
        if c.pattern is not None:
            schema["pattern"] = c.pattern
        if c.format is not None:
            schema["format"] = {"url": "uri"}.get(c.format, c.format)
    elif node.kind in (PrimitiveKind.NUMBER, PrimitiveKind.INTEGER):
        if c.minimum is not None:
            schema["minimum"] = c.minimum
        if c.maximum is not None:
            schema["maximum"] = c.maximum
        if c.multiple_of is not None:
            schema["multipleOf"] = c.multiple_of
    return schema


def to_json_schema(node: SchemaNode) -> dict[str, Any]:
    """Render a schema node as a JSON Schema document for the host."""
    if isinstance(node, Primitive):
        json_type = node.kind.value
        if node.kind == PrimitiveKind.NUMBER and node.constraints.integer:
            json_type = "integer"
        schema: dict[str, Any] = {"type": json_type}
        schema.update(_constraint_keywords(node))
    elif isinstance(node, ObjectNode):
        schema = {
            "type": "object",
            "properties": {name: to_json_schema(child) for name, child in node.fields.items()},
        }
        required = [name for name in node.fields if name in node.required]
        if required:
            schema["required"] = required
        if node.open:
            schema["additionalProperties"] = True
        if node.title:
            schema["title"] = node.title
    elif isinstance(node, ArrayNode):
        schema = {"type": "array", "items": to_json_schema(node.element)}
        schema.update(_constraint_keywords(node))
    elif isinstance(node, EnumNode):
        schema = {"enum": list(node.literals)}
    elif isinstance(node, UnionNode):
        schema = {"anyOf": [to_json_schema(option) for option in node.options]}
    elif isinstance(node, OptionalNode):
        schema = to_json_schema(node.inner)
    else:
        schema = {}

    if node.description and "description" not in schema:
        schema["description"] = node.description
    return schema
