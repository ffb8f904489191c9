"""Python declaration parser for tools, prompts, resources and servers using AST."""

import ast
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from declmcp.core.classifier import is_dynamic_prompt, is_dynamic_resource
from declmcp.core.errors import ParseError
from declmcp.core.naming import snake_to_camel, uri_to_member_name
from declmcp.core.schema import NOT_LITERAL, SymbolTable, extract_literal, literal_member, subscript_base, type_name

logger = logging.getLogger(__name__)

# Properties that may also be written as a nested class of the same name
TYPE_PROPERTIES = ("params", "result", "args", "data", "annotations")


class ComponentType(str, Enum):
    """Marker shape a declaration extends."""

    TOOL = "Tool"
    PROMPT = "Prompt"
    RESOURCE = "Resource"
    SERVER = "Server"


@dataclass(frozen=True)
class ParsedServer:
    """Server metadata plus the identifier of the implementation to bind."""

    class_name: str
    name: str
    version: str
    description: str | None = None
    implementation_identifier: str | None = None


@dataclass(frozen=True)
class ParsedTool:
    class_name: str
    declared_name: str
    method_name: str
    description: str
    params_type: ast.expr | None
    result_type: ast.expr | None
    node: ast.ClassDef
    annotations: dict[str, Any] | None = None

    @property
    def scope(self) -> tuple[ast.ClassDef, ...]:
        return (self.node,)


@dataclass(frozen=True)
class ParsedPrompt:
    class_name: str
    declared_name: str
    method_name: str
    description: str
    args_type: ast.expr | None
    node: ast.ClassDef
    template: str | None = None
    explicit_dynamic: bool = False
    is_dynamic: bool = True

    @property
    def scope(self) -> tuple[ast.ClassDef, ...]:
        return (self.node,)


@dataclass(frozen=True)
class ParsedResource:
    class_name: str
    uri: str
    name: str
    method_name: str
    description: str
    mime_type: str
    data_type: ast.expr | None
    node: ast.ClassDef
    literal_data: Any = NOT_LITERAL
    explicit_dynamic: bool = False
    is_dynamic: bool = True

    @property
    def scope(self) -> tuple[ast.ClassDef, ...]:
        return (self.node,)


@dataclass(frozen=True)
class ParseResult:
    """Everything declared in one file. Produced whole or not at all."""

    file_path: Path
    symbols: SymbolTable
    server: ParsedServer | None = None
    tools: tuple[ParsedTool, ...] = ()
    prompts: tuple[ParsedPrompt, ...] = ()
    resources: tuple[ParsedResource, ...] = ()
    implementation_identifier: str | None = None
    source: str = field(default="", repr=False)

    @property
    def requires_implementation(self) -> bool:
        return bool(self.tools) or any(
            item.is_dynamic for item in (*self.prompts, *self.resources)
        )


def _docstring_text(node: ast.ClassDef) -> str:
    """Class docstring without its ``@tag`` lines."""
    docstring = ast.get_docstring(node) or ""
    text = [line for line in docstring.splitlines() if not line.strip().startswith("@")]
    return "\n".join(text).strip()


class AstParser:
    """AST-based parser for extracting declarations from Python files."""

    def __init__(self, file_path: Path | str) -> None:
        """Initialize the parser.

        Args:
            file_path: Path of the declaration file (used in error messages)
        """
        self.file_path = Path(file_path)

    def parse_file(self) -> ParseResult:
        """Read and parse the declaration file."""
        try:
            with open(self.file_path, encoding="utf-8") as f:
                source = f.read()
        except OSError as e:
            raise ParseError(
                f"Cannot read declaration file: {e}",
                file_path=self.file_path,
                hint="check that the path exists and is readable",
            ) from e
        return self.parse_source(source)

    def parse_source(self, source: str) -> ParseResult:
        """Parse declaration source text. Raises ParseError on any problem."""
        try:
            tree = ast.parse(source, filename=str(self.file_path))
        except SyntaxError as e:
            raise ParseError(
                f"Syntax error at line {e.lineno}: {e.msg}",
                file_path=self.file_path,
                hint="fix the syntax error so the file can be scanned",
            ) from e

        symbols = SymbolTable.from_module(tree, source)

        servers: list[ParsedServer] = []
        tools: list[ParsedTool] = []
        prompts: list[ParsedPrompt] = []
        resources: list[ParsedResource] = []

        for node in tree.body:
            if not isinstance(node, ast.ClassDef):
                continue
            component_type = self._component_type(node)
            if component_type is None:
                continue

            logger.debug(f"Found {component_type.value} declaration {node.name} in {self.file_path}")
            if component_type == ComponentType.TOOL:
                tools.append(self._process_tool(node, symbols))
            elif component_type == ComponentType.PROMPT:
                prompts.append(self._process_prompt(node, symbols))
            elif component_type == ComponentType.RESOURCE:
                resources.append(self._process_resource(node, symbols))
            else:
                servers.append(self._process_server(node))

        if not (servers or tools or prompts or resources):
            raise ParseError(
                "No declarations found",
                file_path=self.file_path,
                hint="declare at least one class extending Tool, Prompt, Resource or Server",
            )
        if len(servers) > 1:
            names = ", ".join(server.class_name for server in servers)
            raise ParseError(
                f"More than one Server declaration ({names})",
                file_path=self.file_path,
                hint="keep exactly one class extending Server per file",
            )

        self._check_unique([tool.declared_name for tool in tools], "tool name")
        self._check_unique([prompt.declared_name for prompt in prompts], "prompt name")
        self._check_unique([resource.uri for resource in resources], "resource URI")

        server = servers[0] if servers else None
        identifier = self._find_implementation(tree, server)
        if server is not None:
            server = ParsedServer(
                class_name=server.class_name,
                name=server.name,
                version=server.version,
                description=server.description,
                implementation_identifier=identifier,
            )

        return ParseResult(
            file_path=self.file_path,
            symbols=symbols,
            server=server,
            tools=tuple(tools),
            prompts=tuple(prompts),
            resources=tuple(resources),
            implementation_identifier=identifier,
            source=source,
        )

    def _component_type(self, node: ast.ClassDef) -> ComponentType | None:
        for base in node.bases:
            name = type_name(base)
            for component_type in ComponentType:
                if name == component_type.value:
                    return component_type
        return None

    def _check_unique(self, names: list[str], what: str) -> None:
        seen: set[str] = set()
        for name in names:
            if name in seen:
                raise ParseError(
                    f"Duplicate {what} '{name}'",
                    file_path=self.file_path,
                    declared_name=name,
                    hint=f"give every declaration a unique {what}",
                )
            seen.add(name)

    def _properties(self, node: ast.ClassDef) -> dict[str, ast.expr]:
        """Collect annotated properties; nested classes stand in for type properties."""
        props: dict[str, ast.expr] = {}
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                props[stmt.target.id] = stmt.annotation
            elif isinstance(stmt, ast.ClassDef) and stmt.name in TYPE_PROPERTIES:
                props.setdefault(stmt.name, ast.Name(id=stmt.name, ctx=ast.Load()))
        return props

    def _literal(
        self,
        node: ast.ClassDef,
        props: dict[str, ast.expr],
        key: str,
        expected: type | tuple[type, ...],
        *,
        aliases: tuple[str, ...] = (),
    ) -> Any:
        """Read a ``key: Literal[value]`` property, or None when absent."""
        annotation = None
        for candidate in (key, *aliases):
            if candidate in props:
                annotation = props[candidate]
                break
        if annotation is None:
            return None

        value = NOT_LITERAL
        if subscript_base(annotation) == "Literal":
            members = annotation.slice.elts if isinstance(annotation.slice, ast.Tuple) else [annotation.slice]
            if len(members) == 1:
                value = literal_member(members[0])
        if value is NOT_LITERAL or not isinstance(value, expected):
            example = {"str": '"..."', "bool": "True"}.get(getattr(expected, "__name__", ""), "...")
            raise ParseError(
                f"Property '{key}' of {node.name} must be a single literal value, "
                f"got {ast.unparse(annotation)}",
                file_path=self.file_path,
                declared_name=node.name,
                hint=f"write it as `{key}: Literal[{example}]`",
            )
        return value

    def _require_name(self, node: ast.ClassDef, props: dict[str, ast.expr], key: str) -> str:
        value = self._literal(node, props, key, str)
        if not value:
            raise ParseError(
                f"{node.name} is missing its '{key}' property",
                file_path=self.file_path,
                declared_name=node.name,
                hint=f'add `{key}: Literal["..."]` to {node.name}',
            )
        return value

    def _process_tool(self, node: ast.ClassDef, symbols: SymbolTable) -> ParsedTool:
        """Process a tool declaration to extract its name and type nodes."""
        props = self._properties(node)
        declared_name = self._require_name(node, props, "name")
        doc_text = _docstring_text(node)
        description = self._literal(node, props, "description", str) or doc_text

        annotations = None
        if "annotations" in props:
            annotations = extract_literal(props["annotations"], symbols, (node,))
            if not isinstance(annotations, dict):
                raise ParseError(
                    f"Tool annotations of {node.name} must be a class of literal fields",
                    file_path=self.file_path,
                    declared_name=declared_name,
                    hint="write each hint as `readOnlyHint: Literal[True]`",
                )

        return ParsedTool(
            class_name=node.name,
            declared_name=declared_name,
            method_name=snake_to_camel(declared_name),
            description=description,
            params_type=props.get("params"),
            result_type=props.get("result"),
            node=node,
            annotations=annotations,
        )

    def _process_prompt(self, node: ast.ClassDef, symbols: SymbolTable) -> ParsedPrompt:
        """Process a prompt declaration; static when it carries a literal template."""
        props = self._properties(node)
        declared_name = self._require_name(node, props, "name")
        doc_text = _docstring_text(node)
        description = self._literal(node, props, "description", str) or doc_text
        template = self._literal(node, props, "template", str)
        if template is not None:
            template = inspect.cleandoc(template) if "\n" in template else template
        explicit_dynamic = bool(self._literal(node, props, "dynamic", bool))

        return ParsedPrompt(
            class_name=node.name,
            declared_name=declared_name,
            method_name=snake_to_camel(declared_name),
            description=description,
            args_type=props.get("args"),
            node=node,
            template=template,
            explicit_dynamic=explicit_dynamic,
            is_dynamic=is_dynamic_prompt(template, explicit_dynamic),
        )

    def _process_resource(self, node: ast.ClassDef, symbols: SymbolTable) -> ParsedResource:
        """Process a resource declaration, pulling literal data when possible."""
        props = self._properties(node)
        uri = self._require_name(node, props, "uri")
        doc_text = _docstring_text(node)
        description = self._literal(node, props, "description", str) or doc_text
        name = self._literal(node, props, "name", str) or uri
        explicit_dynamic = bool(self._literal(node, props, "dynamic", bool))

        data_type = props.get("data")
        literal_data = extract_literal(data_type, symbols, (node,))
        mime_type = self._literal(node, props, "mime_type", str, aliases=("mimeType",))
        mime_type = mime_type or "application/json"

        return ParsedResource(
            class_name=node.name,
            uri=uri,
            name=name,
            method_name=uri_to_member_name(uri),
            description=description,
            mime_type=mime_type,
            data_type=data_type,
            node=node,
            literal_data=literal_data,
            explicit_dynamic=explicit_dynamic,
            is_dynamic=is_dynamic_resource(literal_data, explicit_dynamic),
        )

    def _process_server(self, node: ast.ClassDef) -> ParsedServer:
        props = self._properties(node)
        name = self._require_name(node, props, "name")
        version = self._require_name(node, props, "version")
        doc_text = _docstring_text(node)
        description = self._literal(node, props, "description", str) or doc_text or None
        return ParsedServer(class_name=node.name, name=name, version=version, description=description)

    def _find_implementation(self, tree: ast.Module, server: ParsedServer | None) -> str | None:
        """Locate the implementation: ``export = Name``, else a class extending the Server."""
        for node in tree.body:
            if isinstance(node, ast.Assign):
                for target in node.targets:
                    if isinstance(target, ast.Name) and target.id == "export":
                        value = node.value.func if isinstance(node.value, ast.Call) else node.value
                        if isinstance(value, ast.Name):
                            return value.id

        if server is not None:
            for node in tree.body:
                if isinstance(node, ast.ClassDef) and any(
                    type_name(base) == server.class_name for base in node.bases
                ):
                    return node.name
        return None


def parse_file(file_path: Path | str) -> ParseResult:
    """Parse one declaration file from scratch."""
    return AstParser(file_path).parse_file()


def parse_source(source: str, file_path: Path | str = "<string>") -> ParseResult:
    """Parse declaration source text held in memory."""
    return AstParser(file_path).parse_source(source)
