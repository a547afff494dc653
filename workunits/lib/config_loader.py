"""YAML configuration loader for discovery runs.

Example YAML (discovery.yaml):
    catalog:
      type: filesystem
      path: ${WAREHOUSE_ROOT:-./warehouse}
      whitelist: ["sales.*"]

    update_provider:
      type: filesystem
      options:
        recursive: true

    watermarks:
      storage_backend: local
      local_path: ./.state/watermarks

    assembler:
      max_workers: 4

Usage:
    # Command line
    workunits discover ./discovery.yaml

    # Python API
    from workunits.lib.config_loader import load_discovery_config
    config = load_discovery_config("./discovery.yaml")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from workunits.lib.env import expand_config, load_env_file
from workunits.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["DiscoveryConfig", "load_discovery_config", "parse_discovery_config"]

KNOWN_SECTIONS = ("catalog", "update_provider", "watermarks", "assembler", "env_file")


@dataclass
class DiscoveryConfig:
    """Validated discovery configuration."""

    catalog: Dict[str, Any]
    update_provider_type: Optional[str] = None
    update_provider_options: Dict[str, Any] = field(default_factory=dict)
    watermarks: Dict[str, Any] = field(default_factory=dict)
    max_workers: int = 1
    base_dir: Path = field(default_factory=Path.cwd)
    source_path: Optional[Path] = None


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(
            f"'{name}' must be a mapping", field=name, value=type(value).__name__
        )
    return value


def parse_discovery_config(
    raw: Dict[str, Any], base_dir: Optional[Path] = None
) -> DiscoveryConfig:
    """Validate a parsed config dictionary.

    Raises:
        ConfigurationError: If a section is missing or malformed
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration must be a YAML mapping")

    unknown = sorted(set(raw) - set(KNOWN_SECTIONS))
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(unknown))

    catalog = _section(raw, "catalog")
    if not catalog:
        raise ConfigurationError("The 'catalog' section is required", field="catalog")

    provider = _section(raw, "update_provider")
    options = provider.get("options") or {}
    if not isinstance(options, dict):
        raise ConfigurationError(
            "update_provider.options must be a mapping", field="update_provider.options"
        )

    assembler = _section(raw, "assembler")
    max_workers = assembler.get("max_workers", 1)
    # ${VAR} expansion always yields strings
    if isinstance(max_workers, str) and max_workers.strip().isdigit():
        max_workers = int(max_workers)
    if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
        raise ConfigurationError(
            "assembler.max_workers must be a positive integer",
            field="assembler.max_workers",
            value=max_workers,
        )

    return DiscoveryConfig(
        catalog=catalog,
        update_provider_type=provider.get("type"),
        update_provider_options=dict(options),
        watermarks=_section(raw, "watermarks"),
        max_workers=max_workers,
        base_dir=base_dir or Path.cwd(),
    )


def load_discovery_config(path: Union[str, Path]) -> DiscoveryConfig:
    """Load, expand and validate a discovery config file.

    Relative paths inside the file resolve against the file's directory.
    An ``env_file`` entry (or a ``.env`` beside the config) is loaded
    before ``${VAR}`` references are expanded.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
        raw = yaml.safe_load(text) or {}
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read config file {config_path}: {e}", field="config"
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Config file {config_path} is not valid YAML: {e}", field="config"
        ) from e

    base_dir = config_path.resolve().parent
    if isinstance(raw, dict) and raw.get("env_file"):
        env_path = base_dir / str(raw["env_file"])
        if not load_env_file(env_path):
            logger.warning("env_file %s not found", env_path)
    elif (base_dir / ".env").exists():
        load_env_file(base_dir / ".env")

    try:
        expanded = expand_config(raw, strict=True)
    except KeyError as e:
        raise ConfigurationError(
            f"Config references an unset environment variable: {e.args[0]}",
            field="config",
        ) from e

    config = parse_discovery_config(expanded, base_dir=base_dir)
    config.source_path = config_path
    return config
