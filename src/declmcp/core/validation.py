"""Compile schema node trees into pydantic validators."""

import logging
import math
import re
import uuid
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    AnyUrl,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    with_config,
)
from pydantic.networks import validate_email
from typing_extensions import NotRequired, TypedDict

from declmcp.core.errors import ArgumentValidationError
from declmcp.core.nodes import (
    AnyNode,
    ArrayNode,
    Constraints,
    EnumNode,
    ObjectNode,
    OptionalNode,
    Primitive,
    PrimitiveKind,
    SchemaNode,
    UnionNode,
    to_json_schema,
)

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(AnyUrl)


def _check_pattern(pattern: str):
    compiled = re.compile(pattern)

    def check(value: str) -> str:
        if compiled.search(value) is None:
            raise ValueError(f"String should match pattern '{pattern}'")
        return value

    return check


def _check_email(value: str) -> str:
    validate_email(value)
    return value


def _check_url(value: str) -> str:
    try:
        _URL_ADAPTER.validate_python(value)
    except ValidationError as e:
        raise ValueError(f"Invalid URL: {e.errors()[0]['msg']}") from None
    return value


def _check_uuid(value: str) -> str:
    try:
        uuid.UUID(value)
    except ValueError:
        raise ValueError("Invalid UUID") from None
    return value


FORMAT_CHECKS = {
    "email": _check_email,
    "url": _check_url,
    "uuid": _check_uuid,
}


def _check_whole(value: float) -> float:
    if not value.is_integer():
        raise ValueError("Input should be a whole number")
    return value


def _check_multiple(step: float):
    def check(value: int) -> int:
        remainder = math.fmod(value, step)
        if not (math.isclose(remainder, 0, abs_tol=1e-9) or math.isclose(abs(remainder), step)):
            raise ValueError(f"Input should be a multiple of {step}")
        return value

    return check


def _int_member(c: Constraints, strict: bool) -> Any:
    step = c.multiple_of
    whole_step = step is not None and float(step).is_integer()
    metadata: list[Any] = [
        Field(
            ge=math.ceil(c.minimum) if c.minimum is not None else None,
            le=math.floor(c.maximum) if c.maximum is not None else None,
            multiple_of=int(step) if whole_step else None,
        )
    ]
    if step is not None and not whole_step:
        metadata.append(AfterValidator(_check_multiple(step)))
    return Annotated[(StrictInt if strict else int, *metadata)]


def _float_member(c: Constraints, strict: bool) -> Any:
    bounded = c.minimum is not None or c.maximum is not None
    metadata: list[Any] = [
        Field(
            ge=c.minimum,
            le=c.maximum,
            multiple_of=c.multiple_of,
            allow_inf_nan=False if bounded else None,
        )
    ]
    if c.integer:
        metadata.append(AfterValidator(_check_whole))
    return Annotated[(StrictFloat if strict else float, *metadata)]


def _check_unique(items: list) -> list:
    seen: list = []
    for item in items:
        if item in seen:
            raise ValueError("List should have unique items")
        seen.append(item)
    return items


def _primitive_type(node: Primitive, strict: bool) -> Any:
    c = node.constraints
    if node.kind == PrimitiveKind.STRING:
        metadata: list[Any] = [
            StringConstraints(strict=strict, min_length=c.min_length, max_length=c.max_length)
        ]
        if c.pattern is not None:
            metadata.append(AfterValidator(_check_pattern(c.pattern)))
        if c.format is not None:
            metadata.append(AfterValidator(FORMAT_CHECKS[c.format]))
        return Annotated[(str, *metadata)]

    if node.kind == PrimitiveKind.BOOLEAN:
        return StrictBool if strict else bool

    if c.is_empty():
        if node.kind == PrimitiveKind.INTEGER:
            return StrictInt if strict else int
        return Union[StrictInt, StrictFloat] if strict else Union[int, float]

    # Constraints attach to each union member
    if node.kind == PrimitiveKind.INTEGER:
        return _int_member(c, strict)
    return Union[_int_member(c, strict), _float_member(c, strict)]


def _object_type(node: ObjectNode, strict: bool, path: str) -> Any:
    if not node.fields:
        return dict[str, Any]

    annotations: dict[str, Any] = {}
    for name, child in node.fields.items():
        child_type = build_type(child, strict=strict, path=f"{path}_{name}")
        if name not in node.required:
            child_type = NotRequired[child_type]
        annotations[name] = child_type

    typed_dict = TypedDict(node.title or path, annotations)
    config = ConfigDict(extra="allow" if node.open else "ignore", strict=strict)
    return with_config(config)(typed_dict)


def build_type(node: SchemaNode, *, strict: bool = True, path: str = "Params") -> Any:
    """Return a type expression pydantic can validate for ``node``."""
    if isinstance(node, Primitive):
        return _primitive_type(node, strict)
    if isinstance(node, ObjectNode):
        return _object_type(node, strict, path)
    if isinstance(node, ArrayNode):
        element = build_type(node.element, strict=strict, path=f"{path}_item")
        c = node.constraints
        metadata: list[Any] = [Field(min_length=c.min_items, max_length=c.max_items)]
        if c.unique_items:
            metadata.append(AfterValidator(_check_unique))
        return Annotated[(list[element], *metadata)]
    if isinstance(node, EnumNode):
        return Literal[node.literals]
    if isinstance(node, UnionNode):
        return Union[tuple(build_type(option, strict=strict, path=path) for option in node.options)]
    if isinstance(node, OptionalNode):
        return Optional[build_type(node.inner, strict=strict, path=path)]
    if isinstance(node, AnyNode):
        return Any
    raise TypeError(f"Unknown schema node {node!r}")


class Validator:
    """Runtime check for one declared type.

    Wraps a :class:`pydantic.TypeAdapter` compiled from the schema node and
    turns validation failures into :class:`ArgumentValidationError`.
    """

    def __init__(self, node: SchemaNode, *, kind: str, name: str, strict: bool = True) -> None:
        self.node = node
        self.kind = kind
        self.name = name
        title = re.sub(r"\W", "_", name) or kind
        self.adapter = TypeAdapter(build_type(node, strict=strict, path=f"{title}_{kind}"))

    def validate(self, value: Any) -> Any:
        try:
            return self.adapter.validate_python(value)
        except ValidationError as e:
            logger.debug(f"Rejected arguments for {self.kind} {self.name}: {e.error_count()} error(s)")
            raise ArgumentValidationError(self.kind, self.name, e.errors(include_url=False)) from e

    def is_valid(self, value: Any) -> bool:
        try:
            self.adapter.validate_python(value)
        except ValidationError:
            return False
        return True

    def json_schema(self) -> dict[str, Any]:
        """JSON Schema advertised to the host for this type."""
        return to_json_schema(self.node)
