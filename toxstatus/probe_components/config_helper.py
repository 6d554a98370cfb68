"""
Configuration Helper - Layered config for the toxstatus scanner

Values are resolved in order: packaged defaults.yaml, an optional user YAML
file, TOXSTATUS_* environment variables, then explicit overrides (CLI flags).
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "TOXSTATUS_"


@dataclass
class ToxStatusConfig:
    """Runtime configuration for scanning and serving"""
    listen_host: str = "0.0.0.0"
    listen_port: int = 8081
    refresh_interval: float = 60
    connect_timeout: float = 2
    read_timeout: float = 4
    max_motd_length: int = 256
    tcp_ports: List[int] = field(default_factory=lambda: [443, 3389, 33445])
    directory_url: str = "https://wiki.tox.chat/users/nodes?do=export_raw"
    directory_timeout: float = 10
    max_node_workers: int = 0
    max_port_workers: int = 0
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _field_types() -> Dict[str, Any]:
    return {f.name: f.type for f in fields(ToxStatusConfig)}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the declared type of a config field."""
    try:
        return _convert(_field_types()[name], value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r}") from e


def _convert(declared: Any, value: Any) -> Any:
    if declared == List[int]:
        if isinstance(value, str):
            value = [part for part in value.split(',') if part.strip()]
        return [int(str(port).strip()) for port in value]
    if declared is int:
        return int(value)
    if declared is float:
        return float(value)
    return str(value)


def _load_default_values() -> Dict[str, Any]:
    """Read the defaults.yaml shipped inside the package."""
    try:
        from importlib import resources
        content = resources.files('toxstatus').joinpath('defaults.yaml').read_text(encoding='utf-8')
    except (FileNotFoundError, ModuleNotFoundError) as e:
        logger.debug(f"Packaged defaults.yaml not available, using built-in defaults: {e}")
        return {}
    return yaml.safe_load(content) or {}


def _load_yaml_file(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _apply(config: ToxStatusConfig, values: Mapping[str, Any], source: str) -> ToxStatusConfig:
    known = _field_types()
    unknown = [key for key in values if key not in known]
    if unknown:
        raise ValueError(f"Unknown config keys in {source}: {', '.join(sorted(unknown))}")

    changes = {key: _coerce(key, value) for key, value in values.items() if value is not None}
    if changes:
        logger.debug(f"Config from {source}: {sorted(changes)}")
    return replace(config, **changes)


def _env_values(environ: Mapping[str, str]) -> Dict[str, Any]:
    values = {}
    for name in _field_types():
        env_name = ENV_PREFIX + name.upper()
        if env_name in environ:
            values[name] = environ[env_name]
    return values


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Mapping[str, Any]] = None,
                environ: Optional[Mapping[str, str]] = None) -> ToxStatusConfig:
    """
    Build the effective configuration.

    Args:
        path: Optional user YAML file
        overrides: Explicit values (e.g. CLI flags); None values are ignored
        environ: Environment mapping, defaults to os.environ

    Returns:
        ToxStatusConfig instance
    """
    config = _apply(ToxStatusConfig(), _load_default_values(), "defaults.yaml")

    if path:
        config = _apply(config, _load_yaml_file(path), str(path))

    config = _apply(config, _env_values(os.environ if environ is None else environ), "environment")

    if overrides:
        config = _apply(config, overrides, "overrides")

    return config
