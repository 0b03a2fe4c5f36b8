# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""Configuration loading and merging.

Sources are merged with the following precedence (highest first):
1. CLI overrides
2. Environment variables (AGENT_SUPERVISOR_ prefix)
3. TOML file (explicit path, or agent-supervisor.toml in the search directory)
4. Model defaults
"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import ValidationError

from agent_supervisor.exceptions import ConfigLoadError, ConfigValidationError

from ._models import SupervisorConfig

CONFIG_FILE_NAME = "agent-supervisor.toml"
ENV_PREFIX = "AGENT_SUPERVISOR_"


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed TOML content as dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigLoadError: If the file cannot be parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            # Position attributes only exist on Python 3.14+
            line=getattr(e, "lineno", None),
            column=getattr(e, "colno", None),
        ) from e


def copy_value(value: Any) -> Any:  # noqa: ANN401  # pyright: ignore[reportExplicitAny]
    """Create a deep copy of a configuration value.

    Args:
        value: The value to copy.

    Returns:
        A copy whose dicts and lists are independent of the original.
    """
    if isinstance(value, dict):
        return {k: copy_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [copy_value(item) for item in value]
    # Primitives are immutable, no copy needed
    return value


def deep_merge(
    base: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    override: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Deep merge two configuration dictionaries.

    Merges `override` into `base`, returning a new dictionary. Neither input
    is modified.

    Merge rules:
        - Dictionaries are recursively merged
        - Arrays are replaced entirely (no element-wise merge)
        - Scalars are replaced with override value
        - Missing keys in override preserve base values

    Args:
        base: Base configuration (lower precedence).
        override: Override configuration (higher precedence).

    Returns:
        Merged configuration dictionary.
    """
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for key in base.keys() | override.keys():
        if key not in override:
            result[key] = copy_value(base[key])
        elif key not in base:
            result[key] = copy_value(override[key])
        elif isinstance(base[key], dict) and isinstance(override[key], dict):
            result[key] = deep_merge(base[key], override[key])
        else:
            # Type mismatch or non-dicts - override wins
            result[key] = copy_value(override[key])

    return result


def set_nested_key(
    d: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    key_path: str,
    value: Any,  # noqa: ANN401  # pyright: ignore[reportExplicitAny]
) -> None:
    """Set a value at a dotted key path in a nested dictionary.

    Creates intermediate dictionaries as needed, replacing non-dict values
    that sit on the path.

    Example:
        >>> d = {}
        >>> set_nested_key(d, "logging.level", "debug")
        >>> d
        {'logging': {'level': 'debug'}}
    """
    parts = key_path.split(".")
    current = d

    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]

    current[parts[-1]] = value


def parse_string_value(value: str) -> Any:  # noqa: ANN401  # pyright: ignore[reportExplicitAny]
    """Parse a string value with automatic type inference.

    Order of type inference:
        1. Boolean: true/false (case-insensitive)
        2. Integer: parseable as int
        3. Float: parseable as float (with decimal point)
        4. JSON array or object
        5. String: anything else

    Examples:
        >>> parse_string_value("true")
        True
        >>> parse_string_value("42")
        42
        >>> parse_string_value('["claude", "-p", "{prompt}"]')
        ['claude', '-p', '{prompt}']
    """
    lower_value = value.lower()
    if lower_value in ("true", "false"):
        return lower_value == "true"

    try:
        return int(value)
    except ValueError:
        pass

    if "." in value:
        try:
            return float(value)
        except ValueError:
            pass

    if (value.startswith("[") and value.endswith("]")) or (
        value.startswith("{") and value.endswith("}")
    ):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value


def parse_env_vars(
    prefix: str = ENV_PREFIX,
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Parse environment variables into config dictionary.

    Environment variable naming:
        - Add prefix (AGENT_SUPERVISOR_)
        - Convert to uppercase
        - Replace dots with double underscores
        - Example: logging.level -> AGENT_SUPERVISOR_LOGGING__LEVEL

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary of parsed config values with nested structure.
    """
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :]
        if not config_key:
            continue

        config_path = config_key.replace("__", ".").lower()
        set_nested_key(result, config_path, parse_string_value(value))

    return result


def _validation_error(error: ValidationError) -> ConfigValidationError:
    first = error.errors()[0]
    key = ".".join(str(part) for part in first["loc"])
    msg = f"Invalid configuration value for '{key}': {first['msg']}"
    return ConfigValidationError(
        msg,
        key=key,
        value=first.get("input"),
        expected=first["msg"],
    )


def config_from_dict(data: dict[str, Any]) -> SupervisorConfig:  # pyright: ignore[reportExplicitAny]
    """Validate a configuration dictionary.

    Raises:
        ConfigValidationError: If a value fails validation.
    """
    try:
        return SupervisorConfig.model_validate(data)
    except ValidationError as e:
        raise _validation_error(e) from e


def load_config(
    config_path: Path | None = None,
    *,
    search_dir: Path | None = None,
    include_env: bool = True,
    cli_overrides: dict[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
) -> SupervisorConfig:
    """Load the effective configuration.

    Args:
        config_path: Explicit TOML file; must exist when given.
        search_dir: Directory searched for agent-supervisor.toml when no
            explicit path is given (defaults to the current directory).
        include_env: Whether to apply AGENT_SUPERVISOR_* environment variables.
        cli_overrides: Highest-precedence values, as a nested dictionary.

    Returns:
        The validated configuration.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
        ConfigLoadError: If the TOML file cannot be parsed.
        ConfigValidationError: If the merged values fail validation.
    """
    merged: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    if config_path is not None:
        merged = deep_merge(merged, read_toml_file(config_path))
    else:
        candidate = (search_dir or Path.cwd()) / CONFIG_FILE_NAME
        if candidate.is_file():
            merged = deep_merge(merged, read_toml_file(candidate))

    if include_env:
        merged = deep_merge(merged, parse_env_vars())

    if cli_overrides:
        merged = deep_merge(merged, cli_overrides)

    return config_from_dict(merged)


def render_config(config: SupervisorConfig) -> str:
    """Render a configuration as TOML."""
    return tomli_w.dumps(config.model_dump(mode="json", exclude_none=True))
