"""Configuration loading.

Two formats are supported:

- ``shellkit.yaml`` runtime settings, validated with pydantic, and
- bash-style ``KEY=value`` files that write straight into a Context.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from shellkit.core.context import Context, get_context
from shellkit.core.errors import ConfigError

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class RuntimeConfig(BaseModel):
    """Runtime settings."""
    shell: str = "sh"
    strict: bool = False
    max_jobs: Optional[int] = Field(default=None, ge=1)
    default_timeout: Optional[float] = Field(default=None, gt=0)
    log_level: str = "INFO"
    variables: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        """Upper-case the level and check it is a logging level name."""
        level = str(v).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got '{v}'")
        return level

    @field_validator('variables', mode='before')
    @classmethod
    def values_to_strings(cls, v: Any) -> Dict[str, Union[str, List[str]]]:
        """Convert scalars to strings (YAML parses 1.0 as a float); lists stay arrays."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("variables must be a mapping")
        result: Dict[str, Union[str, List[str]]] = {}
        for key, value in v.items():
            if isinstance(value, (list, tuple)):
                result[str(key)] = [str(item) for item in value]
            elif value is None:
                result[str(key)] = ""
            elif isinstance(value, bool):
                result[str(key)] = "true" if value else "false"
            else:
                result[str(key)] = str(value)
        return result


class ConfigParser:
    """Parse and validate a YAML runtime configuration file."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialize parser with config file path.

        Args:
            config_path: Path to the YAML file

        Raises:
            ConfigError: If the file does not exist
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        self.config: Optional[RuntimeConfig] = None
        self._raw_config: Optional[Dict[str, Any]] = None

    def parse(self) -> RuntimeConfig:
        """Parse and validate configuration.

        Returns:
            Validated configuration object

        Raises:
            ConfigError: If YAML parsing or validation fails
        """
        try:
            with open(self.config_path) as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(self._raw_config, dict):
            raise ConfigError(f"Top level of {self.config_path} must be a mapping")

        try:
            self.config = RuntimeConfig(**self._raw_config)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.config_path}:\n{e}") from e
        return self.config


def load_config(config_path: Union[str, Path]) -> RuntimeConfig:
    """Load and validate a YAML runtime configuration.

    Args:
        config_path: Path to the YAML file

    Returns:
        Parsed configuration
    """
    parser = ConfigParser(config_path)
    return parser.parse()


def apply_config(config: RuntimeConfig, context: Optional[Context] = None) -> None:
    """Write configured variables into a context.

    Args:
        config: Runtime configuration
        context: Target context (defaults to the process-wide one)
    """
    if context is None:
        context = get_context()
    for key, value in config.variables.items():
        if isinstance(value, list):
            context.set_array(key, value)
        else:
            context.set(key, value)
    logger.debug(f"Applied {len(config.variables)} configured variables")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def parse_config_content(content: str, context: Optional[Context] = None) -> int:
    """Load ``KEY=value`` lines into a context.

    Blank lines and ``#`` comments are skipped, matching surrounding quotes
    are stripped and ``KEY=(a b c)`` is stored as an array.

    Args:
        content: Config file text
        context: Target context

    Returns:
        Number of variables set
    """
    if context is None:
        context = get_context()
    count = 0
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        if not key:
            continue
        value = value.strip()
        # Only a bare (a b c) is an array; a quoted one is a plain value
        if value.startswith('(') and value.endswith(')'):
            context.set_array(key, value[1:-1].split())
        else:
            context.set(key, _unquote(value))
        count += 1
    return count


def load_config_file(path: str, context: Optional[Context] = None) -> bool:
    """Load a ``KEY=value`` file into a context.

    Args:
        path: File path, expanded against the context
        context: Target context

    Returns:
        True if the file was found and loaded
    """
    if context is None:
        context = get_context()
    expanded = Path(context.expand(path))
    if not expanded.is_file():
        logger.debug(f"Config file not found: {expanded}")
        return False
    count = parse_config_content(expanded.read_text(encoding="utf-8"), context)
    logger.debug(f"Loaded {count} variables from {expanded}")
    return True


def save_config_file(path: str, keys: Sequence[str], context: Optional[Context] = None) -> None:
    """Save selected variables as a ``KEY=value`` file.

    Arrays (keys with a ``KEY_LENGTH`` entry) are written as ``KEY=(a b c)``
    and values containing spaces or starting with ``(`` are double-quoted. Unset keys are skipped.

    Args:
        path: File path, expanded against the context
        keys: Variables to save
        context: Source context
    """
    if context is None:
        context = get_context()
    lines = [
        "# shellkit configuration",
        f"# Generated on {int(time.time())}",
        "",
    ]
    for key in keys:
        if not context.has(key):
            continue
        if context.has(f"{key}_LENGTH"):
            lines.append(f"{key}=({' '.join(context.get_array(key))})")
        else:
            value = context.get(key)
            if ' ' in value or value.startswith('('):
                lines.append(f'{key}="{value}"')
            else:
                lines.append(f"{key}={value}")
    Path(context.expand(path)).write_text("\n".join(lines) + "\n", encoding="utf-8")


def export_vars(path: str, context: Optional[Context] = None) -> None:
    """Write every variable as an ``export KEY="value"`` line, sorted by key.

    Args:
        path: File path, expanded against the context
        context: Source context
    """
    if context is None:
        context = get_context()
    variables = context.snapshot()
    lines = []
    for key in sorted(variables):
        value = variables[key].replace('\\', '\\\\').replace('"', '\\"')
        value = value.replace('$', '\\$').replace('`', '\\`')
        lines.append(f'export {key}="{value}"')
    Path(context.expand(path)).write_text("\n".join(lines) + "\n", encoding="utf-8")
