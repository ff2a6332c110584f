#!/usr/bin/env python3
"""
Configuration for the VS Code tunnel action.

Settings are string-typed inputs, as a CI runner hands them over. They are
merged from (lowest precedence first) built-in defaults, an optional YAML
file, INPUT_* environment variables and command-line flags, then validated
into a TunnelConfig.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .errors import ConfigurationError

MAX_TUNNEL_NAME_LENGTH = 20
DEFAULT_CONNECTION_TIMEOUT_MINUTES = 5.0
DEFAULT_SESSION_TIMEOUT_MINUTES = 60.0
DEFAULT_KEEP_ALIVE_SECONDS = 3600
DEFAULT_DATA_DIR_NAME = "vscode-cli-data"

# Input name -> TunnelConfig attribute
INPUT_NAMES = {
    "tunnel-name": "tunnel_name",
    "connection-timeout": "connection_timeout_minutes",
    "session-timeout": "session_timeout_minutes",
    "keep-alive-duration": "keep_alive_seconds",
    "verbose": "verbose",
    "cache-identity": "cache_identity",
    "data-dir": "data_dir",
    "log-level": "log_level",
    "log-format": "log_format",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"", "0", "false", "no", "off"}


def default_tunnel_name(env: Optional[Mapping[str, str]] = None) -> str:
    """
    Generate the tunnel name used when none is configured.

    The run id of the CI job keeps names distinct between jobs; the result
    always fits the name length limit.
    """
    env = os.environ if env is None else env
    run_id = re.sub(r"[^A-Za-z0-9-]", "", env.get("GITHUB_RUN_ID", ""))
    if run_id:
        return f"gh-{run_id}"[:MAX_TUNNEL_NAME_LENGTH]
    return "gh-runner-tunnel"


@dataclass
class TunnelConfig:
    """Validated action configuration."""
    tunnel_name: str = ""
    connection_timeout_minutes: float = DEFAULT_CONNECTION_TIMEOUT_MINUTES
    session_timeout_minutes: float = DEFAULT_SESSION_TIMEOUT_MINUTES
    keep_alive_seconds: int = DEFAULT_KEEP_ALIVE_SECONDS
    verbose: bool = False
    cache_identity: Optional[str] = None
    data_dir: Path = field(default_factory=lambda: Path.home() / DEFAULT_DATA_DIR_NAME)
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def connection_timeout_seconds(self) -> float:
        return self.connection_timeout_minutes * 60

    @property
    def session_timeout_seconds(self) -> float:
        return self.session_timeout_minutes * 60

    def validate(self) -> "TunnelConfig":
        """
        Check the configuration for values the action cannot run with.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any value is out of range
        """
        if len(self.tunnel_name.strip()) > MAX_TUNNEL_NAME_LENGTH:
            raise ConfigurationError(
                f"Tunnel name must be {MAX_TUNNEL_NAME_LENGTH} characters or fewer."
            )
        if self.connection_timeout_minutes <= 0:
            raise ConfigurationError("connection-timeout must be a positive number of minutes")
        if self.session_timeout_minutes <= 0:
            raise ConfigurationError("session-timeout must be a positive number of minutes")
        if self.keep_alive_seconds <= 0:
            raise ConfigurationError("keep-alive-duration must be a positive number of seconds")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown log-level: {self.log_level} (expected one of {', '.join(LOG_LEVELS)})"
            )
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(f"Unknown log-format: {self.log_format}")
        return self


def _parse_minutes(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of minutes, got {value!r}")


def _parse_seconds(name: str, value: str) -> int:
    try:
        return int(value, 10)
    except ValueError:
        raise ConfigurationError(f"{name} must be a whole number of seconds, got {value!r}")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def load_yaml_inputs(config_path: Union[str, Path]) -> Dict[str, str]:
    """
    Load raw inputs from a YAML file.

    Args:
        config_path: Path to a YAML mapping of input names to values

    Returns:
        Dictionary of input name to string value
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML configuration: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

    inputs = {}
    for key, value in data.items():
        key = str(key).replace("_", "-")
        if key not in INPUT_NAMES:
            raise ConfigurationError(f"Unknown configuration key: {key}")
        if value is not None:
            inputs[key] = str(value).lower() if isinstance(value, bool) else str(value)
    return inputs


def read_env_inputs(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Read INPUT_* variables the way a CI runner exports action inputs.

    Both INPUT_TUNNEL-NAME and INPUT_TUNNEL_NAME spellings are accepted.
    """
    env = os.environ if env is None else env
    inputs = {}
    for name in INPUT_NAMES:
        for key in (f"INPUT_{name.upper()}", f"INPUT_{name.upper().replace('-', '_')}"):
            value = env.get(key)
            if value is not None and value.strip() != "":
                inputs[name] = value.strip()
                break
    return inputs


def build_config(inputs: Mapping[str, Any],
                 env: Optional[Mapping[str, str]] = None) -> TunnelConfig:
    """
    Convert raw string inputs into a validated TunnelConfig.

    Args:
        inputs: Input name to raw value; missing names take defaults
        env: Environment used for derived defaults

    Returns:
        Validated configuration
    """
    env = os.environ if env is None else env
    unknown = set(inputs) - set(INPUT_NAMES)
    if unknown:
        raise ConfigurationError(f"Unknown configuration key: {sorted(unknown)[0]}")

    values: Dict[str, Any] = {}
    for name, raw in inputs.items():
        if raw is None:
            continue
        raw = str(raw)
        attr = INPUT_NAMES[name]
        if attr in ("connection_timeout_minutes", "session_timeout_minutes"):
            values[attr] = _parse_minutes(name, raw)
        elif attr == "keep_alive_seconds":
            values[attr] = _parse_seconds(name, raw)
        elif attr == "verbose":
            values[attr] = _parse_bool(name, raw)
        elif attr == "data_dir":
            values[attr] = Path(raw).expanduser()
        else:
            values[attr] = raw.strip()

    if not values.get("tunnel_name"):
        values["tunnel_name"] = default_tunnel_name(env)
    if not values.get("cache_identity"):
        values["cache_identity"] = env.get("GITHUB_ACTOR") or None

    known = {f.name for f in fields(TunnelConfig)}
    return TunnelConfig(**{k: v for k, v in values.items() if k in known}).validate()


def load_config(cli_inputs: Optional[Mapping[str, Any]] = None,
                config_path: Optional[Union[str, Path]] = None,
                env: Optional[Mapping[str, str]] = None) -> TunnelConfig:
    """
    Merge every configuration source and validate the result.

    Args:
        cli_inputs: Values given on the command line (None entries ignored)
        config_path: Optional YAML configuration file
        env: Environment mapping, defaults to os.environ

    Returns:
        Validated configuration
    """
    env = os.environ if env is None else env
    merged: Dict[str, Any] = {}
    if config_path:
        merged.update(load_yaml_inputs(config_path))
    merged.update(read_env_inputs(env))
    for name, value in (cli_inputs or {}).items():
        if value is not None:
            merged[name] = value
    return build_config(merged, env)
