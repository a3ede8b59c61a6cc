"""
Service Resolver

Pure accessors over the services captured by the descriptor resolver.
"""

from typing import Union
from urllib.parse import urljoin

from upnp_explorer.exceptions import NotFoundError

from .types import Device, Service, _NotFound


def services_for(device: Union[Device, _NotFound]) -> list[Service]:
    """
    Services of a resolved device, in descriptor order.

    Raises:
        NotFoundError: If given the registry's NOT_FOUND sentinel
    """
    if not isinstance(device, Device):
        raise NotFoundError("Device not found; resolve the device before listing services")
    return list(device.services)


def find_service(device: Union[Device, _NotFound], service_id: str) -> Service:
    """
    Look up a service by serviceId.

    Raises:
        NotFoundError: If the device or service is unknown
    """
    for service in services_for(device):
        if service.service_id == service_id:
            return service
    assert isinstance(device, Device)
    raise NotFoundError(f"Service {service_id!r} not found on device {device.udn or device.location}")


def find_av_transport(device: Union[Device, _NotFound]) -> Service:
    """
    First AVTransport service of a device.

    Raises:
        NotFoundError: If the device is unknown or has no AVTransport
    """
    for service in services_for(device):
        if service.is_av_transport:
            return service
    assert isinstance(device, Device)
    raise NotFoundError(f"Device {device.udn or device.location} has no AVTransport service")


def absolute_url(device: Device, url: str) -> str:
    """Resolve a service URL against the device's URLBase or descriptor location."""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return urljoin(device.base_url, url)
