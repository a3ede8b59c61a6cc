"""
UPnP Explorer - UPnP control point.

Discovers devices over SSDP, resolves their descriptors and services, and
drives AVTransport playback actions.
"""

__version__ = "0.1.0"

from .config import Config, ConfigError, load_config
from .control_point import ControlPoint, Result
from .exceptions import (
    CatalogError,
    ControlPointError,
    DiscoveryError,
    InvalidArgumentError,
    InvocationError,
    NotFoundError,
    ResolutionError,
    UnsupportedActionError,
)

__all__ = [
    "__version__",
    "ControlPoint",
    "Result",
    "Config",
    "load_config",
    "ConfigError",
    "ControlPointError",
    "DiscoveryError",
    "ResolutionError",
    "NotFoundError",
    "CatalogError",
    "InvocationError",
    "UnsupportedActionError",
    "InvalidArgumentError",
]
