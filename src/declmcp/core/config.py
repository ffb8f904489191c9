"""Configuration management for declmcp."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from declmcp.core.errors import DeclarationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "declmcp.json"
ENV_PREFIX = "DECLMCP_"


class Settings(BaseModel):
    """Settings for loading declaration files."""

    model_config = ConfigDict(extra="ignore")

    verbose: bool = Field(False, description="Print a summary table after each load")
    naming_variations: bool = Field(
        True,
        description="Also accept snake_case member names and raw resource URIs",
    )
    strict_types: bool = Field(
        True,
        description="Reject values that only match after coercion (e.g. '5' for int)",
    )
    telemetry_enabled: bool = Field(False, description="Wrap members in OpenTelemetry spans")
    service_name: str = Field("declmcp-server", description="Service name reported in spans")


def find_config_path(start_path: Path | str | None = None) -> Path | None:
    """Find the declmcp.json file by walking up from ``start_path``."""
    current = Path(start_path or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent

    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def find_project_root(start_path: Path | str | None = None) -> tuple[Path | None, Path | None]:
    """Return the directory holding declmcp.json and the file itself."""
    config_path = find_config_path(start_path)
    if config_path is None:
        return None, None
    return config_path.parent, config_path


def _prefixed(values: dict[str, Any]) -> dict[str, Any]:
    return {
        key[len(ENV_PREFIX) :].lower(): value
        for key, value in values.items()
        if key.startswith(ENV_PREFIX) and value is not None
    }


def load_settings(project_path: Path | str | None = None) -> Settings:
    """Load settings for a project directory or declaration file.

    Later sources override earlier ones: defaults, declmcp.json, the
    project's .env file, then DECLMCP_* environment variables.
    """
    start = Path(project_path or Path.cwd())
    base_dir = start.parent if start.is_file() else start
    values: dict[str, Any] = {}

    root, config_path = find_project_root(start)
    if config_path is not None:
        try:
            with open(config_path, encoding="utf-8") as f:
                values.update(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            raise DeclarationError(
                f"Cannot read configuration: {e}",
                file_path=config_path,
                hint="fix or remove the configuration file",
            ) from e
        logger.debug(f"Loaded settings from {config_path}")

    env_file = (root or base_dir) / ".env"
    if env_file.is_file():
        values.update(_prefixed(dotenv_values(env_file)))
    values.update(_prefixed(dict(os.environ)))

    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        raise DeclarationError(
            f"Invalid settings: {e}",
            file_path=config_path,
            hint=f"check the values in {CONFIG_FILENAME} and {ENV_PREFIX}* variables",
        ) from e
