"""Load declaration files into live registration sets."""

import hashlib
import importlib.machinery
import importlib.util
import inspect
import logging
import sys
import threading
import warnings
from pathlib import Path
from typing import Any, Callable

from rich.console import Console
from rich.table import Table

from declmcp.core.config import Settings, load_settings
from declmcp.core.errors import DeclarationError, ParseError, SchemaGenerationWarning
from declmcp.core.parser import ParseResult, parse_file
from declmcp.core.registrar import RegistrationSet, register
from declmcp.telemetry.instrumentation import init_telemetry

logger = logging.getLogger(__name__)

console = Console(stderr=True)

ImplementationLoader = Callable[[Path, str | None], Any]


class _SourceLoader(importlib.machinery.SourceFileLoader):
    """Loader that always compiles from source, never from ``__pycache__``."""

    def get_code(self, fullname: str) -> Any:
        return self.source_to_code(self.get_data(self.path), self.path)


def load_implementation(file_path: Path | str, identifier: str | None) -> Any:
    """Import ``file_path`` and return the object named ``identifier``.

    Classes are instantiated with no arguments. Each call imports the file
    afresh; the module is only held in ``sys.modules`` while it executes.
    """
    path = Path(file_path).resolve()
    if identifier is None:
        return None

    digest = hashlib.sha1(str(path).encode()).hexdigest()[:12]
    module_name = f"_declmcp_impl_{path.stem}_{digest}"
    spec = importlib.util.spec_from_file_location(
        module_name, path, loader=_SourceLoader(module_name, str(path))
    )
    if spec is None or spec.loader is None:
        raise ParseError(
            "Cannot import declaration file",
            file_path=path,
            hint="make sure the file is a Python module",
        )

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise ParseError(
            f"Importing the implementation failed: {type(e).__name__}: {e}",
            file_path=path,
            declared_name=identifier,
            hint="fix the error raised at import time",
        ) from e
    finally:
        sys.modules.pop(module_name, None)

    try:
        implementation = getattr(module, identifier)
    except AttributeError:
        raise ParseError(
            f"Implementation '{identifier}' not found after import",
            file_path=path,
            declared_name=identifier,
            hint=f"define `{identifier}` at module level",
        ) from None

    if inspect.isclass(implementation):
        implementation = implementation()
    logger.debug(f"Loaded implementation {identifier} from {path}")
    return implementation


def print_summary(registrations: RegistrationSet) -> None:
    """Print a table of everything registered from one file."""
    server = registrations.server
    title = f"{server.name} v{server.version}" if server else str(registrations.file_path)
    table = Table(title=title)
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Mode")
    table.add_column("Member", style="green")

    for record in registrations.tools.values():
        table.add_row("tool", record.name, "dynamic", record.binding.member_name)
    for record in registrations.prompts.values():
        mode = "dynamic" if record.is_dynamic else "static"
        table.add_row("prompt", record.name, mode, record.binding.member_name if record.binding else "-")
    for record in registrations.resources.values():
        mode = "dynamic" if record.is_dynamic else "static"
        table.add_row("resource", record.uri, mode, record.binding.member_name if record.binding else "-")

    console.print(table)


def load_server(
    file_path: Path | str,
    implementation: Any = None,
    settings: Settings | None = None,
    loader: ImplementationLoader = load_implementation,
) -> RegistrationSet:
    """Parse, bind and register one declaration file.

    Args:
        file_path: Declaration file to load
        implementation: Implementation object; resolved with ``loader`` when omitted
        settings: Settings to use; loaded from the file's project when omitted
        loader: Module-loading collaborator used to resolve the implementation
    """
    path = Path(file_path)
    settings = settings or load_settings(path)

    parsed: ParseResult = parse_file(path)
    if implementation is None and parsed.requires_implementation:
        implementation = loader(path, parsed.implementation_identifier)

    if settings.telemetry_enabled:
        init_telemetry(settings.service_name)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", SchemaGenerationWarning)
        registrations = register(parsed, implementation, settings)

    for warning in caught:
        if issubclass(warning.category, SchemaGenerationWarning):
            console.print(f"[yellow]Warning: {warning.message}[/yellow]")
        else:
            warnings.warn_explicit(warning.message, warning.category, warning.filename, warning.lineno)

    if settings.verbose:
        print_summary(registrations)
    return registrations


class ServerRegistry:
    """Holds the live registration set for one declaration file.

    Reloads build a complete new set first and then swap it in; a failed
    reload leaves the previous set in place.
    """

    def __init__(
        self,
        file_path: Path | str,
        settings: Settings | None = None,
        loader: ImplementationLoader = load_implementation,
    ) -> None:
        self.file_path = Path(file_path)
        self.settings = settings
        self.loader = loader
        self._lock = threading.Lock()
        self._current: RegistrationSet | None = None
        self.generation = 0

    @property
    def current(self) -> RegistrationSet:
        current = self._current
        if current is None:
            raise RuntimeError(f"{self.file_path} has not been loaded yet")
        return current

    def reload(self, implementation: Any = None) -> RegistrationSet:
        """Rebuild from scratch and swap the new set in atomically."""
        with self._lock:
            try:
                registrations = load_server(
                    self.file_path,
                    implementation=implementation,
                    settings=self.settings,
                    loader=self.loader,
                )
            except DeclarationError as e:
                if self._current is not None:
                    logger.warning(f"Reload of {self.file_path} failed; keeping previous registrations")
                    console.print(f"[red]Reload failed:[/red] {e}")
                raise

            self._current = registrations
            self.generation += 1
            logger.info(f"Loaded {self.file_path} (generation {self.generation})")
            return registrations

    load = reload
