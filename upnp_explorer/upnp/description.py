"""
Descriptor Resolver

Fetches a device description document over HTTP and normalizes it into a
Device record. Missing optional fields become empty strings; only a fetch
failure, an XML parse failure or a document without a device element fails
the resolution.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Iterator, Optional

import aiohttp

from upnp_explorer.exceptions import ResolutionError

from .types import Device, DiscoveryResponse, Service

logger = logging.getLogger(__name__)


def _local(tag: str) -> str:
    """Strip the XML namespace from a tag."""
    return tag.split("}")[-1]


def _child(parent: ET.Element, name: str) -> Optional[ET.Element]:
    for elem in parent:
        if _local(elem.tag) == name:
            return elem
    return None


def _children(parent: ET.Element, name: str) -> Iterator[ET.Element]:
    for elem in parent:
        if _local(elem.tag) == name:
            yield elem


def _text(parent: ET.Element, name: str) -> str:
    elem = _child(parent, name)
    return elem.text.strip() if elem is not None and elem.text else ""


def _udn_from_usn(usn: str) -> str:
    """uuid:XXXX::urn:... -> uuid:XXXX"""
    if not usn.startswith("uuid:"):
        return ""
    return usn.split("::", 1)[0]


def _parse_services(device_elem: ET.Element) -> list[Service]:
    """Collect services of a device and its embedded devices, in document order."""
    services: list[Service] = []

    service_list = _child(device_elem, "serviceList")
    if service_list is not None:
        for service in _children(service_list, "service"):
            services.append(
                Service(
                    service_id=_text(service, "serviceId"),
                    service_type=_text(service, "serviceType"),
                    control_url=_text(service, "controlURL"),
                    event_sub_url=_text(service, "eventSubURL"),
                    scpd_url=_text(service, "SCPDURL"),
                )
            )

    device_list = _child(device_elem, "deviceList")
    if device_list is not None:
        for embedded in _children(device_list, "device"):
            services.extend(_parse_services(embedded))

    return services


def parse_device_description(
    xml_text: str,
    location: str,
    address: str = "",
    usn: str = "",
) -> Device:
    """
    Parse a device description document.

    Args:
        xml_text: Descriptor document body
        location: URL the document was fetched from
        address: Remote address of the device
        usn: USN from the SSDP response, used when the document has no UDN

    Returns:
        Normalized Device

    Raises:
        ResolutionError: If the XML is invalid or has no device element
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ResolutionError(location, e)

    if _local(root.tag) == "device":
        device_elem: Optional[ET.Element] = root
    else:
        device_elem = _child(root, "device")
    if device_elem is None:
        raise ResolutionError(location, "no device element in descriptor")

    device = Device(
        location=location,
        udn=_text(device_elem, "UDN") or _udn_from_usn(usn),
        friendly_name=_text(device_elem, "friendlyName"),
        manufacturer=_text(device_elem, "manufacturer"),
        model_name=_text(device_elem, "modelName"),
        model_number=_text(device_elem, "modelNumber"),
        model_description=_text(device_elem, "modelDescription"),
        device_type=_text(device_elem, "deviceType"),
        serial_number=_text(device_elem, "serialNumber"),
        presentation_url=_text(device_elem, "presentationURL"),
        ssid_name=_text(device_elem, "ssidName"),
        vendor_uuid=_text(device_elem, "uuid"),
        url_base=_text(root, "URLBase") if root is not device_elem else "",
        address=address,
        usn=usn,
        services=tuple(_parse_services(device_elem)),
    )

    logger.debug(
        f"Parsed device: friendly_name={device.friendly_name}, udn={device.udn}, "
        f"services={len(device.services)}"
    )
    return device


class DescriptorResolver:
    """
    Resolves SSDP responses into Device records.

    Performs exactly one fetch per call; retrying is up to the caller.
    """

    def __init__(self, session: aiohttp.ClientSession):
        self._session = session

    async def resolve(self, response: DiscoveryResponse) -> Device:
        """
        Fetch and parse the descriptor a discovery response points at.

        Raises:
            ResolutionError: On fetch or parse failure
        """
        return await self.resolve_location(response.location, response.address, response.usn)

    async def resolve_location(self, location: str, address: str = "", usn: str = "") -> Device:
        """Fetch and parse the descriptor at location."""
        try:
            async with self._session.get(location) as response:
                if response.status != 200:
                    raise ResolutionError(location, f"HTTP {response.status}")
                xml_text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ResolutionError(location, e)

        return parse_device_description(xml_text, location, address=address, usn=usn)


__all__ = ["DescriptorResolver", "parse_device_description"]
