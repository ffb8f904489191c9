"""Tests for binding validation and registration."""

import asyncio
import textwrap
from types import SimpleNamespace

import pytest

from declmcp.core.config import Settings
from declmcp.core.errors import ArgumentValidationError, BindingError
from declmcp.core.parser import parse_source
from declmcp.core.registrar import register

DECLARATIONS = textwrap.dedent(
    '''
    from typing import Literal, TypedDict


    class AddParams(TypedDict):
        a: float
        b: float


    class AddNumbers(Tool):
        """Add two numbers."""

        name: Literal["add_numbers"]
        params: AddParams
        result: float


    class Echo(Tool):
        name: Literal["echo"]
        params: dict


    class Greeting(Prompt):
        name: Literal["greeting"]

        class args(TypedDict):
            name: str

        template: Literal["Hello {{name}}, welcome to {place}!"]


    class Summary(Prompt):
        name: Literal["summary_report"]
        args: dict


    class Config(Resource):
        uri: Literal["config://server"]

        class data:
            port: Literal[8080]
            tags: tuple[Literal["a"], Literal["b"]]


    class Profile(Resource):
        uri: Literal["user://profile/settings"]
        data: dict


    class Calc(Server):
        name: Literal["calc"]
        version: Literal["1.0.0"]
    '''
)


class Implementation:
    def __init__(self) -> None:
        self.calls = []

    def addNumbers(self, params):
        self.calls.append(params)
        return params["a"] + params["b"]

    def echo(self, params):
        return params

    def summaryReport(self, args):
        return f"Summary of {args.get('topic', 'everything')}"

    def user__Profile_Settings(self):
        return {"theme": "dark"}


@pytest.fixture
def parsed():
    return parse_source(DECLARATIONS, "calc.py")


class TestRegistration:
    """Test records produced for a complete implementation."""

    def test_registers_every_item(self, parsed) -> None:
        """Test one record per declared item."""
        registrations = register(parsed, Implementation())

        assert set(registrations.tools) == {"add_numbers", "echo"}
        assert set(registrations.prompts) == {"greeting", "summary_report"}
        assert set(registrations.resources) == {"config://server", "user://profile/settings"}
        assert len(registrations) == 6
        assert registrations.server.name == "calc"

    def test_tool_record(self, parsed) -> None:
        """Test schemas and invocation of a tool."""
        impl = Implementation()
        record = register(parsed, impl).tool("add_numbers")

        assert record.description == "Add two numbers."
        assert record.params_schema["required"] == ["a", "b"]
        assert record.result_schema == {"type": "number"}
        assert record.binding.member_name == "addNumbers"
        assert record.invoke({"a": 2, "b": 3.5}) == 5.5
        assert impl.calls == [{"a": 2, "b": 3.5}]

    def test_tool_rejects_invalid_params(self, parsed) -> None:
        """Test invalid params never reach the member."""
        impl = Implementation()
        record = register(parsed, impl).tool("add_numbers")

        with pytest.raises(ArgumentValidationError) as exc_info:
            record.invoke({"a": "2", "b": 3})
        assert exc_info.value.fields == ["a"]
        assert impl.calls == []

    def test_static_prompt_renders_template(self, parsed) -> None:
        """Test placeholders are substituted and unknown ones kept."""
        record = register(parsed, Implementation()).prompt("greeting")

        assert record.is_dynamic is False
        assert record.binding is None
        assert record.invoke({"name": "Ada"}) == "Hello Ada, welcome to {place}!"

    def test_dynamic_prompt_calls_member(self, parsed) -> None:
        """Test dynamic prompts call the derived member."""
        record = register(parsed, Implementation()).prompt("summary_report")

        assert record.is_dynamic is True
        assert record.invoke({"topic": "sales"}) == "Summary of sales"

    def test_static_resource_returns_copy(self, parsed) -> None:
        """Test static data is returned without an implementation member."""
        record = register(parsed, Implementation()).resource("config://server")

        data = record.invoke()
        assert data == {"port": 8080, "tags": ["a", "b"]}
        data["port"] = 1
        assert record.invoke()["port"] == 8080
        assert record.mime_type == "application/json"

    def test_dynamic_resource_calls_member(self, parsed) -> None:
        """Test the URI-derived member is called."""
        record = register(parsed, Implementation()).resource("user://profile/settings")

        assert record.invoke() == {"theme": "dark"}
        assert record.binding.member_name == "user__Profile_Settings"

    def test_registration_set_is_read_only(self, parsed) -> None:
        """Test records cannot be replaced in place."""
        registrations = register(parsed, Implementation())

        with pytest.raises(TypeError):
            registrations.tools["echo"] = None
        with pytest.raises(KeyError, match="Unknown tool 'nope'"):
            registrations.tool("nope")

    def test_naming_variation(self, parsed) -> None:
        """Test snake_case members are accepted by default."""
        impl = SimpleNamespace(
            add_numbers=lambda params: 0,
            echo=lambda params: params,
            summary_report=lambda args: "",
            user__Profile_Settings=lambda: {},
        )

        registrations = register(parsed, impl)
        assert registrations.tool("add_numbers").binding.member_name == "add_numbers"

    def test_naming_variation_can_be_disabled(self, parsed) -> None:
        """Test only primary names bind when variations are off."""
        impl = SimpleNamespace(
            add_numbers=lambda params: 0,
            echo=lambda params: params,
            summaryReport=lambda args: "",
            user__Profile_Settings=lambda: {},
        )

        with pytest.raises(BindingError) as exc_info:
            register(parsed, impl, Settings(naming_variations=False))
        assert exc_info.value.missing_members == ["addNumbers"]

    def test_async_member_returns_awaitable(self, parsed) -> None:
        """Test coroutine members are returned for the host to await."""

        class AsyncImplementation(Implementation):
            async def echo(self, params):
                await asyncio.sleep(0)
                return params

        record = register(parsed, AsyncImplementation()).tool("echo")
        assert asyncio.run(record.invoke({"x": 1})) == {"x": 1}


class TestBindingValidation:
    """Test exhaustive binding errors."""

    def test_reports_every_missing_member(self, parsed) -> None:
        """Test all gaps are listed, not only the first."""

        class Partial:
            def echo(self, params):
                return params

        with pytest.raises(BindingError) as exc_info:
            register(parsed, Partial())

        error = exc_info.value
        assert error.missing_members == ["addNumbers", "summaryReport", "user__Profile_Settings"]
        assert error.file_path.name == "calc.py"
        message = str(error)
        assert "add a method named `addNumbers`" in message
        assert "def summaryReport(self, args: dict) -> str" in message
        assert "def addNumbers(self, params: AddParams) -> float" in message

    def test_static_items_need_no_member(self) -> None:
        """Test a file of static content registers without an implementation."""
        parsed = parse_source(
            textwrap.dedent(
                """
                class Readme(Resource):
                    uri: Literal["docs://readme"]
                    data: Literal["# Readme"]


                class Hello(Prompt):
                    name: Literal["hello"]
                    template: Literal["Hi"]
                """
            )
        )

        registrations = register(parsed)
        assert registrations.resource("docs://readme").invoke() == "# Readme"
        assert registrations.prompt("hello").invoke() == "Hi"

    def test_missing_implementation_object(self, parsed) -> None:
        """Test every member is reported when no implementation is supplied."""
        with pytest.raises(BindingError) as exc_info:
            register(parsed, None)

        assert len(exc_info.value.issues) == 4
        assert "no implementation object" in exc_info.value.issues[0].reason

    def test_non_callable_member(self, parsed) -> None:
        """Test attributes that cannot be called are rejected."""
        impl = Implementation()
        impl.echo = "not callable"

        with pytest.raises(BindingError) as exc_info:
            register(parsed, impl)

        issue = exc_info.value.issues[0]
        assert issue.member_name == "echo"
        assert "not callable" in issue.reason

    def test_wrong_arity(self, parsed) -> None:
        """Test members that cannot take the documented arguments are rejected."""

        class WrongShape(Implementation):
            def addNumbers(self, a, b):
                return a + b

            def user__Profile_Settings(self, user_id):
                return {}

        with pytest.raises(BindingError) as exc_info:
            register(parsed, WrongShape())

        reasons = {issue.member_name: issue.reason for issue in exc_info.value.issues}
        assert set(reasons) == {"addNumbers", "user__Profile_Settings"}
        assert "1 argument(s)" in reasons["addNumbers"]
        assert "0 argument(s)" in reasons["user__Profile_Settings"]
