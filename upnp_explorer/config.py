"""
UPnP Explorer Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

# Registry identity policies
VALID_IDENTITIES = {"location", "udn"}

# SSDP MX must be between 1 and 5 seconds
MIN_MX = 1
MAX_MX = 5

# Environment variable mappings
ENV_MAPPINGS = {
    # Discovery
    "UPNP_EXPLORER_SEARCH_TARGET": ("discovery", "search_target"),
    "UPNP_EXPLORER_MX": ("discovery", "mx"),
    "UPNP_EXPLORER_COLLECTION_WINDOW": ("discovery", "collection_window"),
    "UPNP_EXPLORER_SCAN_ON_START": ("discovery", "scan_on_start"),
    # Registry
    "UPNP_EXPLORER_REGISTRY_TTL": ("registry", "ttl"),
    "UPNP_EXPLORER_REGISTRY_IDENTITY": ("registry", "identity"),
    # Control
    "UPNP_EXPLORER_HTTP_TIMEOUT": ("control", "timeout"),
    "UPNP_EXPLORER_RETRIES": ("control", "retries"),
    # Server
    "UPNP_EXPLORER_HTTP_PORT": ("server", "http_port"),
    "UPNP_EXPLORER_BIND": ("server", "bind_address"),
    "UPNP_EXPLORER_STATIC_DIR": ("server", "static_dir"),
    # Logging
    "UPNP_EXPLORER_LOG_LEVEL": ("logging", "level"),
}

_INT_VARS = {"UPNP_EXPLORER_MX", "UPNP_EXPLORER_RETRIES", "UPNP_EXPLORER_HTTP_PORT"}
_FLOAT_VARS = {
    "UPNP_EXPLORER_COLLECTION_WINDOW",
    "UPNP_EXPLORER_REGISTRY_TTL",
    "UPNP_EXPLORER_HTTP_TIMEOUT",
}
_BOOL_VARS = {"UPNP_EXPLORER_SCAN_ON_START"}


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class DiscoveryConfig:
    """SSDP discovery configuration."""

    search_target: str = "ssdp:all"
    mx: int = 3
    collection_window: float = 5.0  # Seconds to wait for responses per scan
    scan_on_start: bool = True


@dataclass
class RegistryConfig:
    """Device registry configuration."""

    ttl: float = 1800.0  # Seconds before an unseen device is evicted, 0 = never
    identity: str = "location"  # "location" or "udn"


@dataclass
class ControlConfig:
    """HTTP fetch and SOAP control configuration."""

    timeout: float = 10.0
    retries: int = 1  # Total attempts per control call
    retry_delay: float = 2.0


@dataclass
class ServerConfig:
    """HTTP API server configuration."""

    http_port: int = 8080
    bind_address: str = "0.0.0.0"
    static_dir: str = ""  # Serve UI files from here when set


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete UPnP Explorer configuration."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    control: ControlConfig = field(default_factory=ControlConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_port(port: int) -> bool:
    """Validate port number."""
    return 1 <= port <= 65535


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # Discovery
    if not config.discovery.search_target:
        errors.append("Search target must not be empty")
    if not MIN_MX <= config.discovery.mx <= MAX_MX:
        errors.append(f"Invalid MX: {config.discovery.mx}. Must be between {MIN_MX} and {MAX_MX}")
    if config.discovery.collection_window <= 0:
        errors.append(f"Invalid collection window: {config.discovery.collection_window}")

    # Registry
    if config.registry.ttl < 0:
        errors.append(f"Invalid registry ttl: {config.registry.ttl}")
    if config.registry.identity not in VALID_IDENTITIES:
        errors.append(
            f"Invalid registry identity: {config.registry.identity}. "
            f"Valid values: {sorted(VALID_IDENTITIES)}"
        )

    # Control
    if config.control.timeout <= 0:
        errors.append(f"Invalid HTTP timeout: {config.control.timeout}")
    if config.control.retries < 1:
        errors.append(f"Invalid retries: {config.control.retries}. Must be at least 1")
    if config.control.retry_delay < 0:
        errors.append(f"Invalid retry delay: {config.control.retry_delay}")

    # Server
    if not validate_port(config.server.http_port):
        errors.append(f"Invalid HTTP port: {config.server.http_port}")
    if config.server.static_dir and not Path(config.server.static_dir).is_dir():
        errors.append(f"Static directory not found: {config.server.static_dir}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping, got {type(data).__name__}")
    return data


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var in _INT_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var in _FLOAT_VARS:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue
        elif env_var in _BOOL_VARS:
            value = value.lower() in ("true", "1", "yes", "on")

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def _section(d: dict, name: str) -> dict:
    """Config section as a dict, empty when absent."""
    section = d.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(section).__name__}")
    return section


def _typed(section: dict, key: str, default: Any, name: str) -> Any:
    """
    Read a key, coercing it to the type of its default.

    Raises:
        ConfigError: If the value cannot be converted
    """
    value = section.get(key)
    if value is None:
        return default

    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("true", "1", "yes", "on")
            return bool(value)
        if isinstance(value, bool):
            raise TypeError("boolean where a number or string is expected")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        return str(value)
    except (TypeError, ValueError):
        raise ConfigError(
            f"Invalid value for {name}: {value!r} (expected {type(default).__name__})"
        )


def dict_to_config(d: dict) -> Config:
    """
    Convert a dictionary to Config dataclass.

    Raises:
        ConfigError: If a value has the wrong type
    """
    config = Config()

    # Discovery
    disc = _section(d, "discovery")
    config.discovery.search_target = _typed(
        disc, "search_target", config.discovery.search_target, "discovery.search_target"
    )
    config.discovery.mx = _typed(disc, "mx", config.discovery.mx, "discovery.mx")
    config.discovery.collection_window = _typed(
        disc, "collection_window", config.discovery.collection_window, "discovery.collection_window"
    )
    config.discovery.scan_on_start = _typed(
        disc, "scan_on_start", config.discovery.scan_on_start, "discovery.scan_on_start"
    )

    # Registry
    reg = _section(d, "registry")
    config.registry.ttl = _typed(reg, "ttl", config.registry.ttl, "registry.ttl")
    config.registry.identity = _typed(reg, "identity", config.registry.identity, "registry.identity")

    # Control
    ctl = _section(d, "control")
    config.control.timeout = _typed(ctl, "timeout", config.control.timeout, "control.timeout")
    config.control.retries = _typed(ctl, "retries", config.control.retries, "control.retries")
    config.control.retry_delay = _typed(
        ctl, "retry_delay", config.control.retry_delay, "control.retry_delay"
    )

    # Server
    s = _section(d, "server")
    config.server.http_port = _typed(s, "http_port", config.server.http_port, "server.http_port")
    config.server.bind_address = _typed(
        s, "bind_address", config.server.bind_address, "server.bind_address"
    )
    config.server.static_dir = _typed(s, "static_dir", config.server.static_dir, "server.static_dir")

    # Logging
    log = _section(d, "logging")
    config.logging.level = _typed(log, "level", config.logging.level, "logging.level")

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    # 1. Load from file (lowest priority of explicit configs)
    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    # 2. Load from environment
    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    # 3. Load from CLI (highest priority)
    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    # Convert to Config object (fills in defaults)
    config = dict_to_config(merged)

    validate_config(config)

    return config
