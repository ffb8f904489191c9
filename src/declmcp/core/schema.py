"""Translate declared type expressions into schema node trees.

Type expressions are read straight from the AST; named structures are
looked up in the same file's symbol table. Nothing is imported or
evaluated.
"""

import ast
import inspect
import logging
import warnings
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from declmcp.core.annotations import (
    DocTags,
    apply_tags,
    collect_comments,
    comment_block_above,
    parse_tag_lines,
    unfit_tags,
)
from declmcp.core.errors import SchemaGenerationError, SchemaGenerationWarning
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

PRIMITIVES = {
    "str": PrimitiveKind.STRING,
    "float": PrimitiveKind.NUMBER,
    "int": PrimitiveKind.INTEGER,
    "bool": PrimitiveKind.BOOLEAN,
}
ANY_NAMES = {"Any", "object"}
MAPPING_NAMES = {"dict", "Dict", "Mapping", "MutableMapping"}
SET_NAMES = {"set", "Set", "frozenset", "FrozenSet", "AbstractSet"}
TUPLE_NAMES = {"tuple", "Tuple"}
ARRAY_NAMES = {"list", "List", "Sequence", "MutableSequence", "Iterable", "Collection"}
ARRAY_NAMES |= SET_NAMES | TUPLE_NAMES
PASSTHROUGH_NAMES = {"Required", "ReadOnly", "Final"}
# Bases that mark a class as a plain structure rather than a declaration to inherit from
STRUCTURE_BASES = {"TypedDict", "BaseModel", "object", "Protocol", "Generic"}


class _NotLiteral:
    """Sentinel for type expressions whose value is not known statically."""

    _instance = None

    def __new__(cls) -> "_NotLiteral":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_LITERAL"

    def __bool__(self) -> bool:
        return False


NOT_LITERAL: Any = _NotLiteral()


@dataclass
class SymbolTable:
    """Top-level classes, type aliases and comments of one source file."""

    classes: dict[str, ast.ClassDef] = field(default_factory=dict)
    aliases: dict[str, ast.expr] = field(default_factory=dict)
    comments: dict[int, str] = field(default_factory=dict)

    @classmethod
    def from_module(cls, tree: ast.Module, source: str) -> "SymbolTable":
        table = cls(comments=collect_comments(source))
        type_alias = getattr(ast, "TypeAlias", None)
        for node in tree.body:
            if isinstance(node, ast.ClassDef):
                table.classes[node.name] = node
            elif type_alias is not None and isinstance(node, type_alias):
                table.aliases[node.name.id] = node.value
            elif (
                isinstance(node, ast.AnnAssign)
                and isinstance(node.target, ast.Name)
                and node.value is not None
                and type_name(node.annotation) == "TypeAlias"
            ):
                table.aliases[node.target.id] = node.value
            elif (
                isinstance(node, ast.Assign)
                and len(node.targets) == 1
                and isinstance(node.targets[0], ast.Name)
                and _looks_like_type(node.value)
            ):
                table.aliases[node.targets[0].id] = node.value
        return table

    def lookup_class(self, name: str, scope: Iterable[ast.ClassDef] = ()) -> ast.ClassDef | None:
        """Find a class by name, innermost enclosing class body first."""
        for enclosing in reversed(tuple(scope)):
            for stmt in enclosing.body:
                if isinstance(stmt, ast.ClassDef) and stmt.name == name:
                    return stmt
        return self.classes.get(name)


def type_name(node: ast.expr | None) -> str | None:
    """Return the bare name of ``X`` or ``module.X`` expressions."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def subscript_base(node: ast.expr) -> str | None:
    if isinstance(node, ast.Subscript):
        return type_name(node.value)
    return None


def _subscript_args(node: ast.Subscript) -> list[ast.expr]:
    if isinstance(node.slice, ast.Tuple):
        return list(node.slice.elts)
    return [node.slice]


def _looks_like_type(node: ast.expr) -> bool:
    """Heuristic for ``Alias = <type expression>`` assignments."""
    if isinstance(node, ast.Subscript):
        return True
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _looks_like_type(node.left) and _looks_like_type(node.right)
    if isinstance(node, ast.Constant):
        return node.value is None
    return isinstance(node, ast.Name) and node.id in PRIMITIVES


def _flatten_union(node: ast.expr) -> list[ast.expr]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _flatten_union(node.left) + _flatten_union(node.right)
    return [node]


def _is_none(node: ast.expr) -> bool:
    if isinstance(node, ast.Constant):
        return node.value is None
    return type_name(node) in ("None", "NoneType")


def literal_member(node: ast.expr) -> Any:
    """Value of one ``Literal[...]`` member, or NOT_LITERAL."""
    if isinstance(node, ast.Constant) and (
        node.value is None or isinstance(node.value, (str, int, float, bool))
    ):
        return node.value
    if (
        isinstance(node, ast.UnaryOp)
        and isinstance(node.op, ast.USub)
        and isinstance(node.operand, ast.Constant)
        and isinstance(node.operand.value, (int, float))
        and not isinstance(node.operand.value, bool)
    ):
        return -node.operand.value
    return NOT_LITERAL


def _parse_forward_ref(value: str) -> ast.expr | None:
    try:
        return ast.parse(value.strip(), mode="eval").body
    except SyntaxError:
        return None


def extract_literal(
    node: ast.expr | None,
    symbols: SymbolTable,
    scope: tuple[ast.ClassDef, ...] = (),
    _seen: frozenset[str] = frozenset(),
) -> Any:
    """Return the value a type expression pins down, or NOT_LITERAL.

    Literal shapes are single-member ``Literal[...]`` (and ``None``),
    fixed tuples of literal elements, and structure classes whose fields
    are all literal. The walk stops at the first non-literal member.
    """
    if node is None:
        return NOT_LITERAL
    if isinstance(node, ast.Constant):
        if node.value is None:
            return None
        if isinstance(node.value, str):
            parsed = _parse_forward_ref(node.value)
            return extract_literal(parsed, symbols, scope, _seen)
        return NOT_LITERAL

    if isinstance(node, ast.Subscript):
        base = subscript_base(node)
        args = _subscript_args(node)
        if base == "Literal":
            return literal_member(args[0]) if len(args) == 1 else NOT_LITERAL
        if base in ("Annotated", "Final", "ReadOnly", "Required"):
            return extract_literal(args[0], symbols, scope, _seen)
        if base in TUPLE_NAMES:
            if any(isinstance(arg, ast.Constant) and arg.value is Ellipsis for arg in args):
                return NOT_LITERAL
            values = []
            for arg in args:
                value = extract_literal(arg, symbols, scope, _seen)
                if value is NOT_LITERAL:
                    return NOT_LITERAL
                values.append(value)
            return values
        return NOT_LITERAL

    name = type_name(node)
    if name is None or name in _seen:
        return NOT_LITERAL
    cls = symbols.lookup_class(name, scope)
    if cls is not None:
        data: dict[str, Any] = {}
        inner_scope = (*scope, cls)
        for stmt in cls.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                value = extract_literal(stmt.annotation, symbols, inner_scope, _seen | {name})
                if value is NOT_LITERAL:
                    return NOT_LITERAL
                data[stmt.target.id] = value
        return data
    if name in symbols.aliases:
        return extract_literal(symbols.aliases[name], symbols, scope, _seen | {name})
    return NOT_LITERAL


def is_literal(node: ast.expr | None, symbols: SymbolTable, scope: tuple[ast.ClassDef, ...] = ()) -> bool:
    return extract_literal(node, symbols, scope) is not NOT_LITERAL


class SchemaTranslator:
    """Build schema node trees from annotations in one parsed file.

    Constructs without a translation rule do not abort the file: the
    offending property gets an :class:`AnyNode` and a
    :class:`SchemaGenerationWarning` is emitted and recorded in
    :attr:`warnings`.
    """

    def __init__(self, symbols: SymbolTable, file_path: Path | None = None) -> None:
        self.symbols = symbols
        self.file_path = file_path
        self.warnings: list[str] = []
        self._stack: list[str] = []

    def translate(
        self,
        node: ast.expr | None,
        *,
        where: str,
        scope: tuple[ast.ClassDef, ...] = (),
    ) -> SchemaNode:
        """Translate one type expression; ``where`` names it in warnings."""
        if node is None:
            return AnyNode()
        try:
            return self._translate(node, where, scope)
        except SchemaGenerationError as e:
            return self._degrade(where, e.message)

    def _warn(self, message: str) -> None:
        if self.file_path is not None:
            message = f"{self.file_path}: {message}"
        self.warnings.append(message)
        logger.debug(message)
        warnings.warn(message, SchemaGenerationWarning, stacklevel=4)

    def _degrade(self, where: str, reason: str) -> AnyNode:
        self._warn(f"{where}: {reason}; accepting any value")
        return AnyNode(reason=reason)

    def _translate(self, node: ast.expr, where: str, scope: tuple[ast.ClassDef, ...]) -> SchemaNode:
        if isinstance(node, ast.Constant):
            if node.value is None:
                return EnumNode((None,))
            if isinstance(node.value, str):
                parsed = _parse_forward_ref(node.value)
                if parsed is None:
                    raise SchemaGenerationError(f"cannot parse forward reference {node.value!r}")
                return self._translate(parsed, where, scope)
            raise SchemaGenerationError(f"unsupported constant {node.value!r} in type position")

        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._union(_flatten_union(node), where, scope)

        if isinstance(node, ast.Subscript):
            return self._subscript(node, where, scope)

        name = type_name(node)
        if name is not None:
            return self._named(name, where, scope)

        raise SchemaGenerationError(f"unsupported type expression {ast.unparse(node)!r}")

    def _named(self, name: str, where: str, scope: tuple[ast.ClassDef, ...]) -> SchemaNode:
        if name in PRIMITIVES:
            return Primitive(PRIMITIVES[name])
        if name in ANY_NAMES:
            return AnyNode()
        if name in MAPPING_NAMES:
            return ObjectNode(open=True)
        if name in ARRAY_NAMES:
            return ArrayNode(AnyNode())
        if name in ("None", "NoneType"):
            return EnumNode((None,))

        cls = self.symbols.lookup_class(name, scope)
        if cls is not None:
            return self._object_from_class(cls, where, scope)

        if name in self.symbols.aliases:
            if name in self._stack:
                raise SchemaGenerationError(f"recursive type alias {name!r}")
            self._stack.append(name)
            try:
                return self._translate(self.symbols.aliases[name], where, scope)
            finally:
                self._stack.pop()

        raise SchemaGenerationError(f"unknown type {name!r}")

    def _subscript(self, node: ast.Subscript, where: str, scope: tuple[ast.ClassDef, ...]) -> SchemaNode:
        base = subscript_base(node)
        args = _subscript_args(node)

        if base in ("Optional", "NotRequired"):
            return _optional(self._translate(args[0], where, scope))
        if base in PASSTHROUGH_NAMES:
            return self._translate(args[0], where, scope)
        if base == "Union":
            return self._union(args, where, scope)
        if base == "Literal":
            values = []
            for arg in args:
                value = literal_member(arg)
                if value is NOT_LITERAL:
                    raise SchemaGenerationError(f"unsupported Literal member {ast.unparse(arg)!r}")
                values.append(value)
            return EnumNode(tuple(values))
        if base == "Annotated":
            inner = self._translate(args[0], where, scope)
            lines: list[str] = []
            for meta in args[1:]:
                if isinstance(meta, ast.Constant) and isinstance(meta.value, str):
                    lines.extend(inspect.cleandoc(meta.value).splitlines())
            return self._apply_tags(inner, self._read_tags(lines, where), where)
        if base in TUPLE_NAMES:
            if len(args) == 2 and isinstance(args[1], ast.Constant) and args[1].value is Ellipsis:
                return ArrayNode(self._translate(args[0], where, scope))
            elements = [self._translate(arg, where, scope) for arg in args]
            return ArrayNode(
                _merge_elements(elements),
                Constraints(min_items=len(elements), max_items=len(elements)),
            )
        if base in ARRAY_NAMES:
            constraints = Constraints(unique_items=True) if base in SET_NAMES else Constraints()
            return ArrayNode(self._translate(args[0], where, scope), constraints)
        if base in MAPPING_NAMES:
            return ObjectNode(open=True)

        raise SchemaGenerationError(f"unsupported generic type {ast.unparse(node)!r}")

    def _union(self, members: list[ast.expr], where: str, scope: tuple[ast.ClassDef, ...]) -> SchemaNode:
        has_none = any(_is_none(member) for member in members)
        options = [self._translate(m, where, scope) for m in members if not _is_none(m)]

        if not options:
            return EnumNode((None,))
        if all(isinstance(option, EnumNode) for option in options):
            result: SchemaNode = _merge_elements(options)
        elif len(options) == 1:
            result = options[0]
        else:
            result = UnionNode(tuple(options))
        return _optional(result) if has_none else result

    def _object_from_class(
        self, cls: ast.ClassDef, where: str, scope: tuple[ast.ClassDef, ...]
    ) -> ObjectNode:
        if cls.name in self._stack:
            raise SchemaGenerationError(f"recursive type {cls.name!r}")

        self._stack.append(cls.name)
        try:
            total = True
            for keyword in cls.keywords:
                if keyword.arg == "total" and isinstance(keyword.value, ast.Constant):
                    total = bool(keyword.value.value)

            fields: dict[str, SchemaNode] = {}
            required: set[str] = set()

            for base in cls.bases:
                base_name = type_name(base)
                if base_name is None or base_name in STRUCTURE_BASES:
                    continue
                base_cls = self.symbols.lookup_class(base_name, scope)
                if base_cls is not None:
                    inherited = self._object_from_class(base_cls, where, scope)
                    fields.update(inherited.fields)
                    required |= inherited.required

            inner_scope = (*scope, cls)
            for index, stmt in enumerate(cls.body):
                if not (isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name)):
                    continue
                if subscript_base(stmt.annotation) == "ClassVar" or type_name(stmt.annotation) == "ClassVar":
                    continue

                name = stmt.target.id
                field_where = f"{where}.{name}"
                try:
                    child = self._translate(stmt.annotation, field_where, inner_scope)
                except SchemaGenerationError as e:
                    child = self._degrade(field_where, e.message)
                child = self._apply_tags(child, self.field_tags(cls, index, field_where), field_where)

                explicit_required = subscript_base(stmt.annotation) == "Required"
                if not isinstance(child, OptionalNode) and (
                    stmt.value is not None or (not total and not explicit_required)
                ):
                    child = OptionalNode(child)

                fields[name] = child
                if isinstance(child, OptionalNode):
                    required.discard(name)
                else:
                    required.add(name)

            return ObjectNode(
                fields=fields,
                required=frozenset(required),
                title=cls.name,
                description=ast.get_docstring(cls),
            )
        finally:
            self._stack.pop()

    def field_tags(self, cls: ast.ClassDef, index: int, where: str) -> DocTags:
        """Read the documentation attached to ``cls.body[index]``."""
        stmt = cls.body[index]
        lines = comment_block_above(self.symbols.comments, stmt.lineno)
        if index + 1 < len(cls.body):
            following = cls.body[index + 1]
            if (
                isinstance(following, ast.Expr)
                and isinstance(following.value, ast.Constant)
                and isinstance(following.value.value, str)
            ):
                lines.extend(inspect.cleandoc(following.value.value).splitlines())
        return self._read_tags(lines, where)

    def _read_tags(self, lines: list[str], where: str) -> DocTags:
        tags = parse_tag_lines(lines)
        for problem in tags.problems:
            self._warn(f"{where}: {problem}; tag ignored")
        return tags

    def _apply_tags(self, node: SchemaNode, tags: DocTags, where: str) -> SchemaNode:
        for problem in unfit_tags(node, tags.constraints):
            self._warn(f"{where}: {problem}; tag ignored")
        return apply_tags(node, tags)


def _optional(node: SchemaNode) -> OptionalNode:
    return node if isinstance(node, OptionalNode) else OptionalNode(node)


def _merge_elements(elements: list[SchemaNode]) -> SchemaNode:
    if not elements:
        return AnyNode()
    if all(isinstance(element, EnumNode) for element in elements):
        literals: list[Any] = []
        for element in elements:
            for value in element.literals:
                if not any(value == seen and type(value) is type(seen) for seen in literals):
                    literals.append(value)
        return EnumNode(tuple(literals))
    if all(element == elements[0] for element in elements):
        return elements[0]
    return UnionNode(tuple(elements))
