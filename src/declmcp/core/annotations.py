"""Constraint tags read from the documentation attached to typed fields.

A field is documented either by the block of ``#`` comment lines directly
above it or by a string literal directly below it::

    # Login name
    # @minLength 3
    # @maxLength 20
    username: str

    age: int
    \"\"\"@min 18
    @max 120\"\"\"

Each tag sits on its own line: ``@`` + tag name + one argument (``@int``
and ``@uniqueItems`` take none). Unknown tags are ignored. Tags combine
conjunctively.
"""

import io
import logging
import math
import re
import tokenize
from dataclasses import dataclass, field, replace
from typing import Any

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
)

logger = logging.getLogger(__name__)

FORMATS = ("email", "url", "uuid")

_TAG_LINE = re.compile(r"^@(?P<name>[A-Za-z][A-Za-z0-9_]*)(?:\s+(?P<arg>.*))?$")

_FLOAT_TAGS = {"min": "minimum", "max": "maximum", "multipleOf": "multiple_of"}
_INT_TAGS = {
    "minLength": "min_length",
    "maxLength": "max_length",
    "minItems": "min_items",
    "maxItems": "max_items",
}
_FLAG_TAGS = {"int": "integer", "uniqueItems": "unique_items"}

_STRING_FIELDS = ("min_length", "max_length", "pattern", "format")
_NUMBER_FIELDS = ("minimum", "maximum", "integer", "multiple_of")
_ARRAY_FIELDS = ("min_items", "max_items", "unique_items")

_TAG_NAMES = {
    key: tag for tag, key in (*_FLOAT_TAGS.items(), *_INT_TAGS.items(), *_FLAG_TAGS.items())
}
_TAG_NAMES.update(pattern="pattern", format="format")


@dataclass(frozen=True)
class DocTags:
    """Result of reading one field's documentation."""

    constraints: Constraints = field(default_factory=Constraints)
    description: str | None = None
    raw: tuple[tuple[str, str], ...] = ()
    problems: tuple[str, ...] = ()


def collect_comments(source: str) -> dict[int, str]:
    """Map line numbers to the text of full-line ``#`` comments."""
    comments: dict[int, str] = {}
    try:
        tokens = tokenize.generate_tokens(io.StringIO(source).readline)
        for token in tokens:
            if token.type == tokenize.COMMENT and token.line.lstrip().startswith("#"):
                comments[token.start[0]] = token.string.lstrip("#").lstrip(":").strip()
    except (tokenize.TokenError, IndentationError, SyntaxError) as e:
        logger.debug(f"Comment scan stopped early: {e}")
    return comments


def comment_block_above(comments: dict[int, str], lineno: int) -> list[str]:
    """Return the contiguous comment lines ending right above ``lineno``."""
    lines: list[str] = []
    current = lineno - 1
    while current in comments:
        lines.append(comments[current])
        current -= 1
    lines.reverse()
    return lines


def parse_tag_lines(lines: list[str]) -> DocTags:
    """Split documentation lines into constraint tags and free text."""
    values: dict[str, Any] = {}
    raw: list[tuple[str, str]] = []
    problems: list[str] = []
    text: list[str] = []

    for line in lines:
        stripped = line.strip()
        match = _TAG_LINE.match(stripped)
        if not match:
            if stripped:
                text.append(stripped)
            continue

        name = match.group("name")
        arg = (match.group("arg") or "").strip()
        raw.append((name, arg))
        token = arg.split()[0] if arg else ""

        if name in _FLOAT_TAGS:
            try:
                number = float(token)
            except ValueError:
                number = math.nan
            if not math.isfinite(number):
                problems.append(f"@{name} expects a number, got {arg!r}")
            elif name == "multipleOf" and number <= 0:
                problems.append(f"@multipleOf expects a positive number, got {arg!r}")
            else:
                values[_FLOAT_TAGS[name]] = number
        elif name in _INT_TAGS:
            try:
                count = int(token)
            except ValueError:
                problems.append(f"@{name} expects an integer, got {arg!r}")
            else:
                if count < 0:
                    problems.append(f"@{name} expects a non-negative integer, got {arg!r}")
                else:
                    values[_INT_TAGS[name]] = count
        elif name in _FLAG_TAGS:
            values[_FLAG_TAGS[name]] = True
        elif name == "pattern":
            try:
                re.compile(arg)
            except re.error as e:
                problems.append(f"@pattern {arg!r} is not a valid regular expression: {e}")
            else:
                values["pattern"] = arg
        elif name == "format":
            if token in FORMATS:
                values["format"] = token
            else:
                problems.append(f"@format must be one of {', '.join(FORMATS)}, got {arg!r}")
        else:
            logger.debug(f"Ignoring unknown tag @{name}")

    for key in ("minimum", "maximum", "multiple_of"):
        if key in values and values[key].is_integer():
            values[key] = int(values[key])

    return DocTags(
        constraints=Constraints(**values),
        description=" ".join(text) or None,
        raw=tuple(raw),
        problems=tuple(problems),
    )


def _pick(constraints: Constraints, names: tuple[str, ...]) -> Constraints:
    return Constraints(**{name: getattr(constraints, name) for name in names})


def _set_fields(constraints: Constraints) -> list[str]:
    default = Constraints()
    return [
        name
        for name in Constraints.__dataclass_fields__
        if getattr(constraints, name) != getattr(default, name)
    ]


def _merge(base: Constraints, extra: Constraints) -> Constraints:
    """Overlay the set values of ``extra`` onto ``base``."""
    return replace(base, **{name: getattr(extra, name) for name in _set_fields(extra)})


def _allowed_fields(node: SchemaNode) -> tuple[str, ...]:
    if isinstance(node, Primitive):
        if node.kind == PrimitiveKind.STRING:
            return _STRING_FIELDS
        if node.kind in (PrimitiveKind.NUMBER, PrimitiveKind.INTEGER):
            return _NUMBER_FIELDS
        return ()
    if isinstance(node, ArrayNode):
        return _ARRAY_FIELDS
    return ()


def _kind_label(node: SchemaNode) -> str:
    if isinstance(node, Primitive):
        article = "an" if node.kind.value[0] in "aeiou" else "a"
        return f"{article} {node.kind.value}"
    if isinstance(node, ArrayNode):
        return "an array"
    if isinstance(node, ObjectNode):
        return "an object"
    if isinstance(node, EnumNode):
        return "an enum"
    if isinstance(node, UnionNode):
        return "a union"
    return "an untyped value"


def unfit_tags(node: SchemaNode, constraints: Constraints) -> list[str]:
    """Describe each tag in ``constraints`` that ``node`` cannot carry."""
    while isinstance(node, OptionalNode):
        node = node.inner
    allowed = _allowed_fields(node)
    return [
        f"@{_TAG_NAMES[name]} does not apply to {_kind_label(node)}"
        for name in _set_fields(constraints)
        if name not in allowed
    ]


def apply_tags(node: SchemaNode, tags: DocTags) -> SchemaNode:
    """Attach the constraints and description in ``tags`` to ``node``.

    Constraints that do not apply to the node's kind are dropped (see
    :func:`unfit_tags`); optional wrappers pass constraints through to the
    wrapped node.
    """
    if tags.constraints.is_empty() and not tags.description:
        return node

    if isinstance(node, OptionalNode):
        inner = apply_tags(node.inner, DocTags(constraints=tags.constraints))
        return replace(node, inner=inner, description=tags.description or node.description)

    description = tags.description or node.description
    if isinstance(node, (Primitive, ArrayNode)):
        allowed = _pick(tags.constraints, _allowed_fields(node))
        return replace(node, constraints=_merge(node.constraints, allowed), description=description)
    if isinstance(node, AnyNode) or description is not None:
        return replace(node, description=description)
    return node
