"""Bind parsed declarations to an implementation and build registration records."""

import ast
import copy
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable

from declmcp.core.config import Settings
from declmcp.core.errors import BindingError, BindingIssue
from declmcp.core.naming import member_name_candidates
from declmcp.core.nodes import SchemaNode, to_json_schema
from declmcp.core.parser import ParsedPrompt, ParsedResource, ParsedServer, ParsedTool, ParseResult
from declmcp.core.schema import SchemaTranslator
from declmcp.core.templates import render_template
from declmcp.core.validation import Validator
from declmcp.telemetry.instrumentation import instrument_component

logger = logging.getLogger(__name__)

# Number of positional arguments each kind of member is called with
CALL_ARITY = {"tool": 1, "prompt": 1, "resource": 0}


@dataclass(frozen=True)
class Binding:
    """Verified association between a declared item and its member."""

    kind: str
    declared_name: str
    member_name: str
    member: Callable[..., Any]


@dataclass(frozen=True)
class ToolRecord:
    name: str
    description: str
    params_schema: dict[str, Any]
    result_schema: dict[str, Any] | None
    binding: Binding
    validator: Validator = field(repr=False)
    handler: Callable[..., Any] = field(repr=False)
    annotations: Mapping[str, Any] | None = None

    def invoke(self, params: Mapping[str, Any] | None = None) -> Any:
        """Validate ``params`` and call the implementation member.

        Coroutine members return their coroutine for the caller to await.
        """
        validated = self.validator.validate({} if params is None else params)
        return self.handler(validated)


@dataclass(frozen=True)
class PromptRecord:
    name: str
    description: str
    args_schema: dict[str, Any]
    is_dynamic: bool
    validator: Validator = field(repr=False)
    handler: Callable[..., Any] = field(repr=False)
    binding: Binding | None = None
    template: str | None = None

    def invoke(self, args: Mapping[str, Any] | None = None) -> Any:
        validated = self.validator.validate({} if args is None else args)
        return self.handler(validated)


@dataclass(frozen=True)
class ResourceRecord:
    uri: str
    name: str
    description: str
    mime_type: str
    is_dynamic: bool
    data_schema: dict[str, Any]
    handler: Callable[[], Any] = field(repr=False)
    binding: Binding | None = None

    def invoke(self) -> Any:
        return self.handler()


@dataclass(frozen=True)
class RegistrationSet:
    """Complete, immutable result of one parse-then-register pass."""

    file_path: Path
    server: ParsedServer | None
    tools: Mapping[str, ToolRecord]
    prompts: Mapping[str, PromptRecord]
    resources: Mapping[str, ResourceRecord]
    warnings: tuple[str, ...] = ()
    implementation_identifier: str | None = None

    def tool(self, name: str) -> ToolRecord:
        try:
            return self.tools[name]
        except KeyError:
            raise KeyError(f"Unknown tool '{name}'") from None

    def prompt(self, name: str) -> PromptRecord:
        try:
            return self.prompts[name]
        except KeyError:
            raise KeyError(f"Unknown prompt '{name}'") from None

    def resource(self, uri: str) -> ResourceRecord:
        try:
            return self.resources[uri]
        except KeyError:
            raise KeyError(f"Unknown resource '{uri}'") from None

    def __len__(self) -> int:
        return len(self.tools) + len(self.prompts) + len(self.resources)


def _type_text(node: ast.expr | None, default: str) -> str:
    return ast.unparse(node) if node is not None else default


def expected_shape(item: ParsedTool | ParsedPrompt | ParsedResource) -> str:
    """Describe the call an implementation member must accept."""
    if isinstance(item, ParsedTool):
        params = _type_text(item.params_type, "dict")
        result = _type_text(item.result_type, "Any")
        return f"def {item.method_name}(self, params: {params}) -> {result}"
    if isinstance(item, ParsedPrompt):
        args = _type_text(item.args_type, "dict")
        return f"def {item.method_name}(self, args: {args}) -> str"
    data = _type_text(item.data_type, "Any")
    return f"def {item.method_name}(self) -> {data}"


def _accepts(member: Callable[..., Any], arity: int) -> bool:
    try:
        signature = inspect.signature(member)
    except (TypeError, ValueError):
        # Builtins and some extension callables expose no signature
        return True
    try:
        signature.bind(*([None] * arity))
    except TypeError:
        return False
    return True


class _Binder:
    """Collects every binding problem before reporting any of them."""

    def __init__(self, implementation: Any, settings: Settings) -> None:
        self.implementation = implementation
        self.settings = settings
        self.issues: list[BindingIssue] = []

    def bind(self, kind: str, declared_name: str, item: Any) -> Binding | None:
        primary = item.method_name
        shape = expected_shape(item)

        if self.implementation is None:
            self._issue(kind, declared_name, primary, shape, "no implementation object was supplied")
            return None

        candidates = [primary]
        if self.settings.naming_variations:
            candidates = member_name_candidates(kind, declared_name, primary)

        for candidate in candidates:
            member = getattr(self.implementation, candidate, None)
            if member is None:
                continue
            if not callable(member):
                self._issue(kind, declared_name, primary, shape, f"member `{candidate}` is not callable")
                return None
            if not _accepts(member, CALL_ARITY[kind]):
                self._issue(
                    kind,
                    declared_name,
                    primary,
                    shape,
                    f"member `{candidate}` cannot be called with {CALL_ARITY[kind]} argument(s)",
                )
                return None
            if candidate != primary:
                logger.debug(f"Bound {kind} {declared_name} to naming variation {candidate}")
            return Binding(kind=kind, declared_name=declared_name, member_name=candidate, member=member)

        self._issue(kind, declared_name, primary, shape, f"missing member `{primary}`")
        return None

    def _issue(self, kind: str, declared_name: str, member_name: str, shape: str, reason: str) -> None:
        self.issues.append(
            BindingIssue(
                kind=kind,
                declared_name=declared_name,
                member_name=member_name,
                expected_shape=shape,
                reason=reason,
            )
        )


def _static_prompt_handler(template: str) -> Callable[[Any], str]:
    def render(args: Any) -> str:
        return render_template(template, args if isinstance(args, Mapping) else None)

    return render


def _static_resource_handler(data: Any) -> Callable[[], Any]:
    def read() -> Any:
        return copy.deepcopy(data)

    return read


def register(
    parsed: ParseResult,
    implementation: Any = None,
    settings: Settings | None = None,
) -> RegistrationSet:
    """Translate schemas, bind members and build one registration record per item.

    Raises:
        BindingError: listing every declared item without a usable member
    """
    settings = settings or Settings()
    translator = SchemaTranslator(parsed.symbols, parsed.file_path)
    binder = _Binder(implementation, settings)
    strict = settings.strict_types

    tool_parts: list[tuple[ParsedTool, SchemaNode, SchemaNode | None, Binding | None]] = []
    for tool in parsed.tools:
        params = translator.translate(tool.params_type, where=f"tool '{tool.declared_name}' params", scope=tool.scope)
        result = None
        if tool.result_type is not None:
            result = translator.translate(tool.result_type, where=f"tool '{tool.declared_name}' result", scope=tool.scope)
        tool_parts.append((tool, params, result, binder.bind("tool", tool.declared_name, tool)))

    prompt_parts: list[tuple[ParsedPrompt, SchemaNode, Binding | None]] = []
    for prompt in parsed.prompts:
        args = translator.translate(prompt.args_type, where=f"prompt '{prompt.declared_name}' args", scope=prompt.scope)
        binding = binder.bind("prompt", prompt.declared_name, prompt) if prompt.is_dynamic else None
        prompt_parts.append((prompt, args, binding))

    resource_parts: list[tuple[ParsedResource, SchemaNode, Binding | None]] = []
    for resource in parsed.resources:
        data = translator.translate(resource.data_type, where=f"resource '{resource.uri}' data", scope=resource.scope)
        binding = binder.bind("resource", resource.uri, resource) if resource.is_dynamic else None
        resource_parts.append((resource, data, binding))

    if binder.issues:
        logger.warning(f"{len(binder.issues)} binding issue(s) in {parsed.file_path}")
        raise BindingError(
            binder.issues,
            file_path=parsed.file_path,
            implementation=parsed.implementation_identifier,
        )

    tools: dict[str, ToolRecord] = {}
    for tool, params, result, binding in tool_parts:
        tools[tool.declared_name] = ToolRecord(
            name=tool.declared_name,
            description=tool.description,
            params_schema=to_json_schema(params),
            result_schema=to_json_schema(result) if result is not None else None,
            binding=binding,
            validator=Validator(params, kind="tool", name=tool.declared_name, strict=strict),
            handler=instrument_component(binding.member, "tool", tool.declared_name),
            annotations=MappingProxyType(tool.annotations) if tool.annotations else None,
        )

    prompts: dict[str, PromptRecord] = {}
    for prompt, args, binding in prompt_parts:
        if binding is not None:
            handler = instrument_component(binding.member, "prompt", prompt.declared_name)
        else:
            handler = _static_prompt_handler(prompt.template)
        prompts[prompt.declared_name] = PromptRecord(
            name=prompt.declared_name,
            description=prompt.description,
            args_schema=to_json_schema(args),
            is_dynamic=prompt.is_dynamic,
            validator=Validator(args, kind="prompt", name=prompt.declared_name, strict=strict),
            handler=handler,
            binding=binding,
            template=prompt.template,
        )

    resources: dict[str, ResourceRecord] = {}
    for resource, data, binding in resource_parts:
        if binding is not None:
            handler = instrument_component(binding.member, "resource", resource.uri)
        else:
            handler = _static_resource_handler(resource.literal_data)
        resources[resource.uri] = ResourceRecord(
            uri=resource.uri,
            name=resource.name,
            description=resource.description,
            mime_type=resource.mime_type,
            is_dynamic=resource.is_dynamic,
            data_schema=to_json_schema(data),
            handler=handler,
            binding=binding,
        )

    logger.info(
        f"Registered {len(tools)} tool(s), {len(prompts)} prompt(s) and "
        f"{len(resources)} resource(s) from {parsed.file_path}"
    )
    return RegistrationSet(
        file_path=parsed.file_path,
        server=parsed.server,
        tools=MappingProxyType(tools),
        prompts=MappingProxyType(prompts),
        resources=MappingProxyType(resources),
        warnings=tuple(translator.warnings),
        implementation_identifier=parsed.implementation_identifier,
    )
