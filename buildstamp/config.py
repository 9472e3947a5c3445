"""Configuration loader for buildstamp.

Loads an optional ``buildstamp.yml``, validates it against the embedded JSON
schema and exposes it as dataclasses. A missing default file yields the
built-in defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from jsonschema import Draft7Validator

from .clock import DEFAULT_ROUND_MINUTES


DEFAULT_CONFIG_NAME = "buildstamp.yml"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Environment override for the config file location
CONFIG_ENV_VAR = "BUILDSTAMP_CONFIG"


CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "version": {"type": "string"},
        "server": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "host": {"type": "string", "minLength": 1},
                "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                "rounding": {"type": "boolean"},
                "round_minutes": {"type": "integer", "minimum": 1, "maximum": 60},
            },
        },
        "monitor": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "interval": {"type": "integer", "minimum": 1},
                "stability_window": {"type": "integer", "minimum": 1},
                "enable_bell": {"type": "boolean"},
                "timeout": {"type": "number", "exclusiveMinimum": 0},
                "hosts": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["name", "url"],
                        "properties": {
                            "name": {"type": "string", "minLength": 1},
                            "url": {"type": "string", "minLength": 1},
                        },
                    },
                },
            },
        },
    },
}


def validate_against_schema(data: Any, schema: Dict[str, Any] = CONFIG_SCHEMA) -> Tuple[bool, List[str]]:
    """Validate data against a JSON schema.

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])

    if not errors:
        return True, []

    messages: List[str] = []
    for err in errors[:50]:
        location = ".".join([str(p) for p in err.absolute_path]) or "<root>"
        messages.append(f"{location}: {err.message}")

    if len(errors) > 50:
        messages.append(f"... and {len(errors) - 50} more errors")

    return False, messages


@dataclass
class ServerConfig:
    """Listener and timestamp settings."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    rounding: bool = True
    round_minutes: int = DEFAULT_ROUND_MINUTES


@dataclass
class HostItem:
    """A host exposing the timestamp endpoint."""
    name: str
    url: str


@dataclass
class MonitorConfig:
    """Build monitor settings."""
    interval: int = 1000
    stability_window: int = 5
    enable_bell: bool = True
    timeout: float = 5.0
    hosts: List[HostItem] = field(default_factory=list)

    def add_host(self, host: HostItem) -> None:
        self.hosts.append(host)


@dataclass
class BuildstampConfig:
    """Full configuration with structured access."""

    path: Optional[Path] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)
    version: str = "1"
    server: ServerConfig = field(default_factory=ServerConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)


def _parse_server(server_data: Dict[str, Any]) -> ServerConfig:
    return ServerConfig(
        host=server_data.get("host", DEFAULT_HOST),
        port=server_data.get("port", DEFAULT_PORT),
        rounding=server_data.get("rounding", True),
        round_minutes=server_data.get("round_minutes", DEFAULT_ROUND_MINUTES),
    )


def _parse_monitor(monitor_data: Dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        interval=monitor_data.get("interval", 1000),
        stability_window=monitor_data.get("stability_window", 5),
        enable_bell=monitor_data.get("enable_bell", True),
        timeout=float(monitor_data.get("timeout", 5.0)),
        hosts=[HostItem(name=h["name"], url=h["url"]) for h in monitor_data.get("hosts", [])],
    )


def parse_config(raw_data: Dict[str, Any], path: Optional[Path] = None) -> BuildstampConfig:
    """Validate a raw mapping and build a BuildstampConfig from it.

    Raises:
        ValueError: If the data does not match the config schema.
    """
    valid, errors = validate_against_schema(raw_data)
    if not valid:
        where = f" in {path}" if path is not None else ""
        raise ValueError(
            f"Invalid configuration{where}:\n" +
            "\n".join(f"  - {e}" for e in errors)
        )

    return BuildstampConfig(
        path=path,
        raw_data=raw_data,
        version=str(raw_data.get("version", "1")),
        server=_parse_server(raw_data.get("server", {})),
        monitor=_parse_monitor(raw_data.get("monitor", {})),
    )


def load_config(config_path: Optional[Path] = None) -> BuildstampConfig:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Explicit path to a config file. When omitted, the
            ``BUILDSTAMP_CONFIG`` environment variable is consulted, then
            ``buildstamp.yml`` in the current directory.

    Returns:
        BuildstampConfig instance. Defaults are returned when no explicit
        path was given and the default file does not exist.

    Raises:
        FileNotFoundError: If an explicitly requested config file doesn't exist.
        ValueError: If config is invalid against schema.
    """
    explicit = config_path is not None
    if config_path is None:
        env_config = os.environ.get(CONFIG_ENV_VAR)
        if env_config:
            config_path = Path(env_config)
            explicit = True
        else:
            config_path = Path.cwd() / DEFAULT_CONFIG_NAME
    config_path = config_path.resolve()

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        return BuildstampConfig()

    try:
        raw_data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")
    if not isinstance(raw_data, dict):
        raise ValueError(f"Invalid configuration in {config_path}: expected a mapping")

    return parse_config(raw_data, path=config_path)
