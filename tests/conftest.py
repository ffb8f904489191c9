"""Pytest configuration and shared fixtures for declmcp tests."""

import os
import shutil
import tempfile
import textwrap
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

import declmcp.examples
from declmcp.telemetry import instrumentation

EXAMPLES_DIR = Path(declmcp.examples.__file__).resolve().parent


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test isolation."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_project(temp_dir: Path) -> Path:
    """Create a minimal project with a declmcp.json."""
    project_dir = temp_dir / "test_project"
    project_dir.mkdir()

    config = project_dir / "declmcp.json"
    config.write_text(
        """{
    "verbose": false,
    "naming_variations": true,
    "strict_types": true
}"""
    )
    return project_dir


@pytest.fixture
def write_declarations(sample_project: Path) -> Callable[..., Path]:
    """Write dedented declaration source into the sample project."""

    def write(source: str, name: str = "server.py") -> Path:
        path = sample_project / name
        path.write_text(textwrap.dedent(source).lstrip())
        return path

    return write


@pytest.fixture
def weather_file() -> Path:
    """The bundled example declaration file."""
    return EXAMPLES_DIR / "weather_server.py"


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch) -> None:
    """Keep DECLMCP_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("DECLMCP_"):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def isolate_telemetry(monkeypatch) -> None:
    """Make sure no test leaves a tracer provider behind."""
    monkeypatch.setattr(instrumentation, "_provider", None)
    monkeypatch.setattr(instrumentation, "_tracer", None)
