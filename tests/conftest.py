"""Shared fixtures: a fake aiohttp session and UPnP documents."""

import asyncio
from typing import Any, Optional, Union

import pytest

from upnp_explorer.config import Config
from upnp_explorer.upnp import Device, Service

LOCATION = "http://192.168.1.50:49152/description.xml"
UDN = "uuid:5f9ec1b3-ed59-1900-4530-00a0def4d1a8"
AVT_TYPE = "urn:schemas-upnp-org:service:AVTransport:1"
AVT_ID = "urn:upnp-org:serviceId:AVTransport"
RC_TYPE = "urn:schemas-upnp-org:service:RenderingControl:1"
RC_ID = "urn:upnp-org:serviceId:RenderingControl"
CONTROL_URL = "http://192.168.1.50:49152/upnp/control/AVTransport1"
SCPD_URL = "http://192.168.1.50:49152/AVTransport/scpd.xml"


def device_xml(
    friendly_name: str = "Living Room",
    udn: str = UDN,
    url_base: str = "",
    services: str = "",
) -> str:
    """Device description document with AVTransport and RenderingControl."""
    url_base_xml = f"<URLBase>{url_base}</URLBase>" if url_base else ""
    services = services or f"""
      <service>
        <serviceType>{AVT_TYPE}</serviceType>
        <serviceId>{AVT_ID}</serviceId>
        <SCPDURL>/AVTransport/scpd.xml</SCPDURL>
        <controlURL>/upnp/control/AVTransport1</controlURL>
        <eventSubURL>/upnp/event/AVTransport1</eventSubURL>
      </service>
      <service>
        <serviceType>{RC_TYPE}</serviceType>
        <serviceId>{RC_ID}</serviceId>
        <SCPDURL>/RenderingControl/scpd.xml</SCPDURL>
        <controlURL>/upnp/control/RenderingControl1</controlURL>
        <eventSubURL>/upnp/event/RenderingControl1</eventSubURL>
      </service>"""
    return f"""<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
  <specVersion><major>1</major><minor>0</minor></specVersion>
  {url_base_xml}
  <device>
    <deviceType>urn:schemas-upnp-org:device:MediaRenderer:1</deviceType>
    <friendlyName>{friendly_name}</friendlyName>
    <manufacturer>Denon</manufacturer>
    <modelName>HEOS 1</modelName>
    <modelNumber>HS1</modelNumber>
    <serialNumber>ABC123</serialNumber>
    <UDN>{udn}</UDN>
    <serviceList>{services}
    </serviceList>
  </device>
</root>"""


SCPD_XML = """<?xml version="1.0"?>
<scpd xmlns="urn:schemas-upnp-org:service-1-0">
  <specVersion><major>1</major><minor>0</minor></specVersion>
  <actionList>
    <action>
      <name>Play</name>
      <argumentList>
        <argument>
          <name>InstanceID</name>
          <direction>in</direction>
          <relatedStateVariable>A_ARG_TYPE_InstanceID</relatedStateVariable>
        </argument>
        <argument>
          <name>Speed</name>
          <direction>in</direction>
          <relatedStateVariable>TransportPlaySpeed</relatedStateVariable>
        </argument>
      </argumentList>
    </action>
    <action>
      <name>Pause</name>
      <argumentList>
        <argument>
          <name>InstanceID</name>
          <direction>in</direction>
          <relatedStateVariable>A_ARG_TYPE_InstanceID</relatedStateVariable>
        </argument>
      </argumentList>
    </action>
    <action>
      <name>GetTransportInfo</name>
      <argumentList>
        <argument>
          <name>InstanceID</name>
          <direction>in</direction>
          <relatedStateVariable>A_ARG_TYPE_InstanceID</relatedStateVariable>
        </argument>
        <argument>
          <name>CurrentTransportState</name>
          <direction>out</direction>
          <relatedStateVariable>TransportState</relatedStateVariable>
        </argument>
        <argument>
          <name>CurrentTransportStatus</name>
          <direction>out</direction>
          <relatedStateVariable>TransportStatus</relatedStateVariable>
        </argument>
      </argumentList>
    </action>
  </actionList>
  <serviceStateTable/>
</scpd>"""


def soap_response(action: str, values: Optional[dict] = None) -> str:
    """Successful SOAP response envelope."""
    body = "".join(f"<{k}>{v}</{k}>" for k, v in (values or {}).items())
    return (
        '<?xml version="1.0"?>'
        '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
        's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
        "<s:Body>"
        f'<u:{action}Response xmlns:u="{AVT_TYPE}">{body}</u:{action}Response>'
        "</s:Body></s:Envelope>"
    )


def soap_fault(code: str = "701", description: str = "Transition not available") -> str:
    """UPnP SOAP fault envelope."""
    return (
        '<?xml version="1.0"?>'
        '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">'
        "<s:Body><s:Fault>"
        "<faultcode>s:Client</faultcode><faultstring>UPnPError</faultstring>"
        '<detail><UPnPError xmlns="urn:schemas-upnp-org:control-1-0">'
        f"<errorCode>{code}</errorCode><errorDescription>{description}</errorDescription>"
        "</UPnPError></detail>"
        "</s:Fault></s:Body></s:Envelope>"
    )


class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside `async with`."""

    def __init__(self, status: int = 200, body: str = "", gate: Optional[asyncio.Event] = None):
        self.status = status
        self._body = body
        self._gate = gate

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        if self._gate is not None:
            await self._gate.wait()
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


class _Raising:
    """Request context manager that fails on entry, like a refused connection."""

    def __init__(self, error: BaseException):
        self._error = error

    async def __aenter__(self) -> None:
        raise self._error

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


Outcome = Union[FakeResponse, BaseException]


class FakeSession:
    """
    Minimal aiohttp.ClientSession replacement.

    Each URL maps to a queue of outcomes; the last outcome repeats.
    Unknown URLs answer 404. Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[Outcome]] = {}
        self.requests: list[tuple[str, str, dict]] = []
        self.closed = False

    def add(self, url: str, *outcomes: Outcome) -> None:
        self.routes.setdefault(url, []).extend(outcomes)

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._request("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> Any:
        return self._request("POST", url, kwargs)

    def requests_to(self, url: str) -> list[tuple[str, str, dict]]:
        return [r for r in self.requests if r[1] == url]

    async def close(self) -> None:
        self.closed = True

    def _request(self, method: str, url: str, kwargs: dict) -> Any:
        self.requests.append((method, url, kwargs))
        queue = self.routes.get(url)
        if not queue:
            return FakeResponse(404, "Not Found")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            return _Raising(outcome)
        return outcome


class FakeListener:
    """DiscoveryListener replacement that records searches."""

    def __init__(self, send_ok: bool = True) -> None:
        self.send_ok = send_ok
        self.started = False
        self.searches: list[str] = []
        self._response_callbacks: list = []
        self._error_callbacks: list = []

    def on_response(self, callback: Any) -> None:
        self._response_callbacks.append(callback)

    def on_error(self, callback: Any) -> None:
        self._error_callbacks.append(callback)

    async def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def search(self, search_target: str = "ssdp:all") -> bool:
        self.searches.append(search_target)
        return self.send_ok

    def deliver(self, response: Any) -> None:
        for callback in self._response_callbacks:
            callback(response)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_listener() -> FakeListener:
    return FakeListener()


@pytest.fixture
def config() -> Config:
    """Test configuration with fast retries."""
    cfg = Config()
    cfg.control.retry_delay = 0
    cfg.discovery.collection_window = 0.01
    return cfg


@pytest.fixture
def av_transport() -> Service:
    return Service(
        service_id=AVT_ID,
        service_type=AVT_TYPE,
        control_url="/upnp/control/AVTransport1",
        event_sub_url="/upnp/event/AVTransport1",
        scpd_url="/AVTransport/scpd.xml",
    )


@pytest.fixture
def rendering_control() -> Service:
    return Service(
        service_id=RC_ID,
        service_type=RC_TYPE,
        control_url="/upnp/control/RenderingControl1",
        event_sub_url="/upnp/event/RenderingControl1",
        scpd_url="/RenderingControl/scpd.xml",
    )


@pytest.fixture
def renderer(av_transport: Service, rendering_control: Service) -> Device:
    """A resolved media renderer."""
    return Device(
        location=LOCATION,
        udn=UDN,
        friendly_name="Living Room",
        manufacturer="Denon",
        model_name="HEOS 1",
        device_type="urn:schemas-upnp-org:device:MediaRenderer:1",
        address="192.168.1.50",
        services=(av_transport, rendering_control),
    )
