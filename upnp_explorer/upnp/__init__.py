"""
UPnP control point pipeline.

Discovery -> descriptor -> registry -> services -> action catalog -> control.
"""

from .catalog import ActionCatalogResolver, parse_scpd
from .control import SUPPORTED_ACTIONS, ActionInvoker
from .description import DescriptorResolver, parse_device_description
from .registry import DeviceRegistry
from .services import absolute_url, find_av_transport, find_service, services_for
from .ssdp import DiscoveryListener, parse_ssdp_response
from .types import (
    NOT_FOUND,
    ActionArgument,
    ActionCatalog,
    ActionDescriptor,
    Device,
    DiscoveryResponse,
    InvocationResult,
    Service,
)

__all__ = [
    # Types
    "ActionArgument",
    "ActionCatalog",
    "ActionDescriptor",
    "Device",
    "DiscoveryResponse",
    "InvocationResult",
    "Service",
    "NOT_FOUND",
    # Pipeline stages
    "DiscoveryListener",
    "parse_ssdp_response",
    "DescriptorResolver",
    "parse_device_description",
    "DeviceRegistry",
    "services_for",
    "find_service",
    "find_av_transport",
    "absolute_url",
    "ActionCatalogResolver",
    "parse_scpd",
    "ActionInvoker",
    "SUPPORTED_ACTIONS",
]
