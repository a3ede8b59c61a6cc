"""
UPnP data model.

Discovery responses, devices, services and action descriptors as produced
by the discovery -> descriptor -> SCPD -> control chain.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from upnp_explorer.exceptions import InvocationError

AV_TRANSPORT_MARKER = ":service:AVTransport:"


@dataclass(frozen=True)
class DiscoveryResponse:
    """
    A single SSDP search response.

    Ephemeral: handed to the descriptor resolver and then dropped.
    """

    search_target: str
    location: str
    address: str
    usn: str = ""
    server: str = ""
    max_age: int = 0  # CACHE-CONTROL max-age, 0 when absent
    headers: dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class Service:
    """A service advertised in a device descriptor's serviceList."""

    service_id: str = ""
    service_type: str = ""
    control_url: str = ""
    event_sub_url: str = ""
    scpd_url: str = ""

    @property
    def is_av_transport(self) -> bool:
        return AV_TRANSPORT_MARKER in self.service_type

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON payload."""
        return {
            "serviceId": self.service_id,
            "serviceType": self.service_type,
            "controlURL": self.control_url,
            "eventSubURL": self.event_sub_url,
            "SCPDURL": self.scpd_url,
        }


@dataclass(frozen=True)
class Device:
    """
    A resolved UPnP device.

    Only created after its descriptor was fetched and parsed. Replaced
    wholesale on re-resolution.
    """

    location: str
    udn: str = ""
    friendly_name: str = ""
    manufacturer: str = ""
    model_name: str = ""
    model_number: str = ""
    model_description: str = ""
    device_type: str = ""
    serial_number: str = ""
    presentation_url: str = ""
    # WiiM/LinkPlay vendor extensions
    ssid_name: str = ""
    vendor_uuid: str = ""
    url_base: str = ""
    address: str = ""
    usn: str = ""
    services: tuple[Service, ...] = ()

    @property
    def base_url(self) -> str:
        """Base for resolving relative service URLs."""
        return self.url_base or self.location

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON payload (camelCase keys, as the UI expects)."""
        return {
            "udn": self.udn,
            "friendlyName": self.friendly_name,
            "manufacturer": self.manufacturer,
            "modelName": self.model_name,
            "modelNumber": self.model_number,
            "modelDescription": self.model_description,
            "deviceType": self.device_type,
            "serialNumber": self.serial_number,
            "presentationURL": self.presentation_url,
            "ssidName": self.ssid_name,
            "uuid": self.vendor_uuid,
            "location": self.location,
            "address": self.address,
            "services": [s.to_dict() for s in self.services],
        }


@dataclass(frozen=True)
class ActionArgument:
    """One argument of an SCPD action."""

    name: str
    direction: str  # "in" or "out"
    related_state_variable: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "direction": self.direction,
            "relatedStateVariable": self.related_state_variable,
        }


@dataclass(frozen=True)
class ActionDescriptor:
    """An invocable action listed in a service's SCPD document."""

    name: str
    arguments: tuple[ActionArgument, ...] = ()

    @property
    def in_arguments(self) -> list[ActionArgument]:
        return [a for a in self.arguments if a.direction == "in"]

    @property
    def out_arguments(self) -> list[ActionArgument]:
        return [a for a in self.arguments if a.direction == "out"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "arguments": [a.to_dict() for a in self.arguments],
        }


@dataclass(frozen=True)
class ActionCatalog:
    """Parsed SCPD action list plus the raw document it came from."""

    service: Service
    actions: tuple[ActionDescriptor, ...]
    document: str = ""

    @property
    def names(self) -> list[str]:
        return [a.name for a in self.actions]

    def get(self, name: str) -> Optional[ActionDescriptor]:
        for action in self.actions:
            if action.name == name:
                return action
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "serviceId": self.service.service_id,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class InvocationResult:
    """
    Outcome of a control call.

    Either ok with the output arguments (and the transport state for
    GetTransportInfo) or not ok with the error that caused it.
    """

    action: str
    ok: bool
    state: Optional[str] = None
    values: dict[str, str] = field(default_factory=dict)
    error: Optional["InvocationError"] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"action": self.action, "ok": self.ok}
        if self.state is not None:
            result["state"] = self.state
        if self.values:
            result["values"] = dict(self.values)
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


class _NotFound:
    """Sentinel returned by registry lookups that miss."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()
