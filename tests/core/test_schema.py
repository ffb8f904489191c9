"""Tests for type-to-schema translation."""

import ast
import textwrap

import pytest

from declmcp.core.errors import SchemaGenerationWarning
from declmcp.core.nodes import (
    AnyNode,
    ArrayNode,
    EnumNode,
    ObjectNode,
    OptionalNode,
    Primitive,
    PrimitiveKind,
    UnionNode,
    to_json_schema,
)
from declmcp.core.schema import NOT_LITERAL, SchemaTranslator, SymbolTable, extract_literal, is_literal


def make_translator(source: str = "") -> SchemaTranslator:
    source = textwrap.dedent(source)
    tree = ast.parse(source)
    return SchemaTranslator(SymbolTable.from_module(tree, source))


def translate(expression: str, source: str = ""):
    translator = make_translator(source)
    return translator.translate(ast.parse(expression, mode="eval").body, where="test")


class TestPrimitives:
    """Test primitive type mapping."""

    @pytest.mark.parametrize(
        "annotation, kind",
        [
            ("str", PrimitiveKind.STRING),
            ("float", PrimitiveKind.NUMBER),
            ("int", PrimitiveKind.INTEGER),
            ("bool", PrimitiveKind.BOOLEAN),
        ],
    )
    def test_maps_primitives(self, annotation: str, kind: PrimitiveKind) -> None:
        """Test each primitive annotation maps to its kind."""
        assert translate(annotation) == Primitive(kind)

    def test_any_and_dict(self) -> None:
        """Test permissive annotations do not warn."""
        assert translate("Any") == AnyNode()
        assert translate("dict[str, int]") == ObjectNode(open=True)


class TestOptionality:
    """Test optional wrappers."""

    @pytest.mark.parametrize(
        "annotation",
        ["str | None", "Optional[str]", "Union[str, None]", "None | str", "NotRequired[str]"],
    )
    def test_optional_forms(self, annotation: str) -> None:
        """Test every optional spelling yields Optional(inner)."""
        assert translate(annotation) == OptionalNode(Primitive(PrimitiveKind.STRING))

    def test_optional_is_not_double_wrapped(self) -> None:
        """Test NotRequired of an optional stays a single wrapper."""
        assert translate("NotRequired[str | None]") == OptionalNode(Primitive(PrimitiveKind.STRING))


class TestCollections:
    """Test array mapping."""

    def test_list(self) -> None:
        """Test list[T] maps to an array of T."""
        assert translate("list[int]") == ArrayNode(Primitive(PrimitiveKind.INTEGER))

    def test_set_requires_unique_items(self) -> None:
        """Test sets become arrays with unique items."""
        node = translate("set[str]")
        assert isinstance(node, ArrayNode)
        assert node.constraints.unique_items is True

    def test_fixed_tuple(self) -> None:
        """Test fixed tuples pin the array length."""
        node = translate("tuple[int, int]")
        assert node.element == Primitive(PrimitiveKind.INTEGER)
        assert node.constraints.min_items == 2
        assert node.constraints.max_items == 2

    def test_variadic_tuple(self) -> None:
        """Test tuple[T, ...] is an unbounded array."""
        assert translate("tuple[str, ...]") == ArrayNode(Primitive(PrimitiveKind.STRING))

    def test_nested_arrays(self) -> None:
        """Test nesting is handled recursively."""
        assert translate("list[list[bool]]") == ArrayNode(ArrayNode(Primitive(PrimitiveKind.BOOLEAN)))


class TestEnums:
    """Test literal unions."""

    def test_literal_union(self) -> None:
        """Test Literal with several members maps to an enum."""
        assert translate('Literal["a", "b", 3]') == EnumNode(("a", "b", 3))

    def test_union_of_literals_merges(self) -> None:
        """Test Literal["a"] | Literal["b"] merges into one enum."""
        assert translate('Literal["a"] | Literal["b"]') == EnumNode(("a", "b"))

    def test_mixed_union(self) -> None:
        """Test other unions keep each option."""
        node = translate("str | int")
        assert isinstance(node, UnionNode)
        assert node.options == (Primitive(PrimitiveKind.STRING), Primitive(PrimitiveKind.INTEGER))


class TestObjects:
    """Test structure classes."""

    def test_typed_dict(self) -> None:
        """Test fields and the required set of a TypedDict."""
        node = translate(
            "User",
            """
            class User(TypedDict):
                name: str
                nickname: NotRequired[str]
                age: int | None
            """,
        )

        assert isinstance(node, ObjectNode)
        assert node.title == "User"
        assert set(node.fields) == {"name", "nickname", "age"}
        assert node.required == frozenset({"name"})

    def test_total_false(self) -> None:
        """Test total=False makes fields optional unless Required."""
        node = translate(
            "Filters",
            """
            class Filters(TypedDict, total=False):
                query: Required[str]
                limit: int
            """,
        )

        assert node.required == frozenset({"query"})
        assert isinstance(node.fields["limit"], OptionalNode)

    def test_defaults_make_fields_optional(self) -> None:
        """Test fields with defaults are not required."""
        node = translate(
            "Options",
            """
            class Options:
                verbose: bool = False
                name: str
                CACHE: ClassVar[int] = 3
            """,
        )

        assert node.required == frozenset({"name"})
        assert "CACHE" not in node.fields

    def test_inherits_base_fields(self) -> None:
        """Test fields of a same-file base class are included."""
        node = translate(
            "Child",
            """
            class Base(TypedDict):
                id: str


            class Child(Base):
                label: str
            """,
        )

        assert set(node.fields) == {"id", "label"}
        assert node.required == frozenset({"id", "label"})

    def test_nested_objects(self) -> None:
        """Test structures nest without a depth limit."""
        node = translate(
            "Outer",
            """
            class Inner(TypedDict):
                value: float


            class Middle(TypedDict):
                inner: Inner
                items: list[Inner]


            class Outer(TypedDict):
                middle: Middle
            """,
        )

        middle = node.fields["middle"]
        assert isinstance(middle.fields["inner"], ObjectNode)
        assert middle.fields["items"].element.fields["value"] == Primitive(PrimitiveKind.NUMBER)

    def test_type_alias(self) -> None:
        """Test aliases are resolved through the symbol table."""
        node = translate(
            "Tags",
            """
            Tags = list[str]
            """,
        )

        assert node == ArrayNode(Primitive(PrimitiveKind.STRING))

    def test_forward_reference_string(self) -> None:
        """Test quoted annotations are parsed and resolved."""
        node = translate(
            '"Point"',
            """
            class Point(TypedDict):
                x: float
            """,
        )

        assert isinstance(node, ObjectNode)


class TestDegradation:
    """Test constructs without a translation rule."""

    def test_unknown_name_degrades_with_warning(self) -> None:
        """Test an unknown type becomes AnyNode and warns."""
        translator = make_translator()

        with pytest.warns(SchemaGenerationWarning, match="unknown type 'datetime'"):
            node = translator.translate(ast.parse("datetime", mode="eval").body, where="tool 'x' params")

        assert isinstance(node, AnyNode)
        assert node.reason is not None
        assert translator.warnings and "tool 'x' params" in translator.warnings[0]

    def test_bad_field_degrades_only_that_field(self) -> None:
        """Test one unsupported field does not abort the object."""
        with pytest.warns(SchemaGenerationWarning, match=r"test\.when: unknown type 'datetime'"):
            node = translate(
                "Event",
                """
                class Event(TypedDict):
                    name: str
                    when: datetime
                """,
            )

        assert node.fields["name"] == Primitive(PrimitiveKind.STRING)
        assert isinstance(node.fields["when"], AnyNode)

    def test_recursive_type_degrades(self) -> None:
        """Test self-referencing structures do not recurse forever."""
        with pytest.warns(SchemaGenerationWarning, match="recursive type 'TreeNode'"):
            node = translate(
                "TreeNode",
                """
                class TreeNode(TypedDict):
                    label: str
                    children: list[TreeNode]
                """,
            )

        assert node.fields["label"] == Primitive(PrimitiveKind.STRING)
        assert isinstance(node.fields["children"], AnyNode)


class TestLiteralDetection:
    """Test detection of fully literal shapes."""

    def _extract(self, expression: str, source: str = ""):
        source = textwrap.dedent(source)
        symbols = SymbolTable.from_module(ast.parse(source), source)
        return extract_literal(ast.parse(expression, mode="eval").body, symbols)

    def test_literal_values(self) -> None:
        """Test single-member literals yield their value."""
        assert self._extract('Literal["x"]') == "x"
        assert self._extract("Literal[3.5]") == 3.5
        assert self._extract("Literal[True]") is True
        assert self._extract("None") is None

    def test_non_literal_shapes(self) -> None:
        """Test named types and multi-member literals are not literal."""
        assert self._extract("str") is NOT_LITERAL
        assert self._extract('Literal["a", "b"]') is NOT_LITERAL
        assert self._extract("list[str]") is NOT_LITERAL

    def test_all_literal_structure(self) -> None:
        """Test a class of literal fields yields a dict."""
        source = """
            class Data:
                name: Literal["demo"]
                sizes: tuple[Literal[1], Literal[2]]
        """
        assert self._extract("Data", source) == {"name": "demo", "sizes": [1, 2]}

    def test_one_non_literal_member(self) -> None:
        """Test a single non-literal member makes the whole shape non-literal."""
        source = """
            class Data:
                name: Literal["demo"]
                count: int
        """
        assert self._extract("Data", source) is NOT_LITERAL

    def test_is_literal(self) -> None:
        """Test the boolean helper."""
        symbols = SymbolTable()
        assert is_literal(ast.parse('Literal["a"]', mode="eval").body, symbols)
        assert not is_literal(ast.parse("int", mode="eval").body, symbols)


class TestJsonSchema:
    """Test rendering schema nodes for the host."""

    def test_object_schema(self) -> None:
        """Test required fields and property types are rendered."""
        node = translate(
            "User",
            """
            class User(TypedDict):
                # @minLength 3
                name: str
                age: NotRequired[int]
            """,
        )

        schema = to_json_schema(node)
        assert schema["type"] == "object"
        assert schema["required"] == ["name"]
        assert schema["properties"]["name"] == {"type": "string", "minLength": 3}
        assert schema["properties"]["age"] == {"type": "integer"}

    def test_enum_and_array_schema(self) -> None:
        """Test enums and arrays are rendered."""
        assert to_json_schema(translate('Literal["a", "b"]')) == {"enum": ["a", "b"]}
        assert to_json_schema(translate("set[int]")) == {
            "type": "array",
            "items": {"type": "integer"},
            "uniqueItems": True,
        }
