"""declmcp: compile typed interface declarations into validated MCP registrations."""

__version__ = "0.1.0"

from declmcp.core.errors import (
    ArgumentValidationError,
    BindingError,
    BindingIssue,
    DeclarationError,
    ParseError,
    SchemaGenerationWarning,
)
from declmcp.core.loader import ServerRegistry, load_implementation, load_server
from declmcp.core.parser import parse_file, parse_source
from declmcp.core.registrar import RegistrationSet, register
from declmcp.markers import Prompt, Resource, Server, Tool

__all__ = [
    "__version__",
    "ArgumentValidationError",
    "BindingError",
    "BindingIssue",
    "DeclarationError",
    "ParseError",
    "Prompt",
    "RegistrationSet",
    "Resource",
    "SchemaGenerationWarning",
    "Server",
    "ServerRegistry",
    "Tool",
    "load_implementation",
    "load_server",
    "parse_file",
    "parse_source",
    "register",
]
