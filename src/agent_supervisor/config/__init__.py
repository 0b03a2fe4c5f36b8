"""Agent supervisor configuration.

Example:
    >>> from agent_supervisor.config import load_config
    >>> config = load_config()
    >>> config.max_concurrent
    1
"""

from agent_supervisor.exceptions import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
)

from ._loader import (
    CONFIG_FILE_NAME,
    ENV_PREFIX,
    config_from_dict,
    deep_merge,
    load_config,
    parse_env_vars,
    parse_string_value,
    read_toml_file,
    render_config,
    set_nested_key,
)
from ._models import (
    AgentCommandConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    SupervisorConfig,
)

__all__ = [
    "CONFIG_FILE_NAME",
    "ENV_PREFIX",
    "AgentCommandConfig",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "SupervisorConfig",
    "config_from_dict",
    "deep_merge",
    "load_config",
    "parse_env_vars",
    "parse_string_value",
    "read_toml_file",
    "render_config",
    "set_nested_key",
]
