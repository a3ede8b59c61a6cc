"""
Action Invoker

SOAP control requests against a device's AVTransport service. Failures of
any kind come back inside the InvocationResult; invoke() does not raise.
"""

import asyncio
import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Mapping, Optional
from xml.sax.saxutils import escape

import aiohttp

from upnp_explorer.exceptions import InvalidArgumentError, InvocationError, UnsupportedActionError

from .description import _child, _local
from .services import absolute_url
from .types import Device, InvocationResult, Service

logger = logging.getLogger(__name__)

# SOAP constants
SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_ENCODING = "http://schemas.xmlsoap.org/soap/encoding/"

DEFAULT_INSTANCE_ID = "0"
DEFAULT_PLAY_SPEED = "1"

# Retry configuration
DEFAULT_RETRIES = 1
DEFAULT_RETRY_DELAY = 2.0

# Accepted action names -> AVTransport action sent on the wire
TRANSPORT_ACTIONS = {
    "Play": "Play",
    "Pause": "Pause",
    "Next": "Next",
    "Prev": "Previous",
    "Previous": "Previous",
}
QUERY_ACTIONS = {
    "GetTransportInfo": "GetTransportInfo",
}
SUPPORTED_ACTIONS = {**TRANSPORT_ACTIONS, **QUERY_ACTIONS}

# Argument names become element names in the SOAP body
_ARGUMENT_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_.\-]*")


def build_arguments(action: str, args: Optional[Mapping[str, Any]] = None) -> dict[str, str]:
    """
    Argument set for an action, with defaults applied.

    InstanceID defaults to 0 and Play gets Speed=1. Caller values override
    defaults; extra caller arguments follow the defaults in order.

    Raises:
        InvalidArgumentError: If a caller argument name is not an XML name
    """
    arguments = {"InstanceID": DEFAULT_INSTANCE_ID}
    if SUPPORTED_ACTIONS.get(action) == "Play":
        arguments["Speed"] = DEFAULT_PLAY_SPEED
    for key, value in (args or {}).items():
        if not isinstance(key, str) or not _ARGUMENT_NAME_RE.fullmatch(key):
            raise InvalidArgumentError(action, str(key))
        arguments[key] = str(value)
    return arguments


def build_soap_envelope(service_type: str, action: str, args: Mapping[str, str]) -> str:
    """Build SOAP envelope XML."""
    args_xml = "".join(f"<{k}>{escape(v)}</{k}>" for k, v in args.items())

    # Single-line format; some renderers reject pretty-printed envelopes
    return (
        '<?xml version="1.0"?>'
        f'<s:Envelope xmlns:s="{SOAP_ENVELOPE_NS}" '
        f's:encodingStyle="{SOAP_ENCODING}">'
        "<s:Body>"
        f'<u:{action} xmlns:u="{service_type}">'
        f"{args_xml}"
        f"</u:{action}>"
        "</s:Body>"
        "</s:Envelope>"
    )


def _body(xml_text: str) -> Optional[ET.Element]:
    root = ET.fromstring(xml_text)
    if _local(root.tag) == "Body":
        return root
    return _child(root, "Body")


def parse_soap_response(xml_text: str, action: str) -> dict[str, str]:
    """
    Output arguments of a successful SOAP response.

    Raises:
        InvocationError: If the body is not a well-formed action response
    """
    try:
        body = _body(xml_text)
    except ET.ParseError as e:
        raise InvocationError(action, e)

    if body is None or len(body) == 0:
        raise InvocationError(action, "response has no SOAP body")

    response = body[0]
    if _local(response.tag) != f"{action}Response":
        raise InvocationError(action, f"unexpected response element {_local(response.tag)!r}")

    return {_local(elem.tag): (elem.text or "") for elem in response}


def parse_soap_fault(xml_text: str) -> tuple[str, str]:
    """(errorCode, errorDescription) from a SOAP fault, empty when absent."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return "", ""

    error_code = ""
    error_description = ""
    for elem in root.iter():
        tag = _local(elem.tag)
        if tag == "errorCode":
            error_code = (elem.text or "").strip()
        elif tag == "errorDescription":
            error_description = (elem.text or "").strip()
    return error_code, error_description


class ActionInvoker:
    """
    Sends AVTransport control actions.

    Handles:
    - Action name validation and argument defaults
    - SOAP action encoding and sending
    - Response and fault parsing
    - Optional retry on transport failures
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        retries: int = DEFAULT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        self._session = session
        self.retries = max(1, retries)
        self.retry_delay = retry_delay

    async def invoke(
        self,
        device: Device,
        service: Service,
        action: str,
        args: Optional[Mapping[str, Any]] = None,
    ) -> InvocationResult:
        """
        Invoke an action on a service of a device.

        Args:
            device: Device owning the service (for URL resolution)
            service: AVTransport service to call
            action: Play, Pause, Next, Prev or GetTransportInfo
            args: Extra or overriding arguments

        Returns:
            InvocationResult; never raises for network or protocol failures
        """
        wire_action = SUPPORTED_ACTIONS.get(action)
        if wire_action is None:
            logger.warning(f"Rejected unsupported action {action!r}")
            return InvocationResult(action=action, ok=False, error=UnsupportedActionError(action))

        if not service.is_av_transport:
            error = UnsupportedActionError(
                action, f"service {service.service_id or service.service_type!r} is not AVTransport"
            )
            return InvocationResult(action=action, ok=False, error=error)

        if not service.control_url:
            return InvocationResult(
                action=action,
                ok=False,
                error=InvocationError(action, "service has no controlURL"),
            )

        try:
            arguments = build_arguments(action, args)
        except InvalidArgumentError as e:
            logger.warning(f"Rejected {action}: {e}")
            return InvocationResult(action=action, ok=False, error=e)

        url = absolute_url(device, service.control_url)

        try:
            values = await self._soap_action(url, service.service_type, wire_action, arguments)
        except InvocationError as e:
            return InvocationResult(action=action, ok=False, error=e)

        state = None
        if wire_action == "GetTransportInfo":
            state = values.get("CurrentTransportState")
            if not state:
                error = InvocationError(action, "response has no CurrentTransportState")
                return InvocationResult(action=action, ok=False, values=values, error=error)
            logger.debug(f"Transport state of {device.friendly_name!r}: {state}")

        return InvocationResult(action=action, ok=True, state=state, values=values)

    async def _soap_action(
        self,
        url: str,
        service_type: str,
        action: str,
        args: Mapping[str, str],
    ) -> dict[str, str]:
        """
        Send SOAP action with retry logic.

        UPnP faults are final; network errors and other HTTP failures are
        retried up to the configured attempt count.

        Raises:
            InvocationError: When every attempt failed
        """
        envelope = build_soap_envelope(service_type, action, args)
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPAction": f'"{service_type}#{action}"',
        }

        last_error: Optional[InvocationError] = None
        for attempt in range(self.retries):
            try:
                async with self._session.post(url, data=envelope, headers=headers) as response:
                    text = await response.text()
                    if response.status == 200:
                        return parse_soap_response(text, action)

                    error_code, error_desc = parse_soap_fault(text)
                    if error_code or error_desc:
                        logger.warning(f"UPnP error: code={error_code}, description={error_desc}")
                        raise InvocationError(action, f"HTTP {response.status}", error_code, error_desc)

                    logger.warning(f"SOAP {action} failed ({response.status}): {text[:500]}")
                    last_error = InvocationError(action, f"HTTP {response.status}")

            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning(f"SOAP {action} error (attempt {attempt + 1}): {e}")
                last_error = InvocationError(action, e)

            if attempt < self.retries - 1:
                await asyncio.sleep(self.retry_delay)

        assert last_error is not None
        if self.retries > 1:
            logger.error(f"SOAP {action} failed after {self.retries} attempts: {last_error}")
        else:
            logger.warning(f"SOAP {action} failed: {last_error}")
        raise last_error


__all__ = [
    "ActionInvoker",
    "SUPPORTED_ACTIONS",
    "TRANSPORT_ACTIONS",
    "QUERY_ACTIONS",
    "build_arguments",
    "build_soap_envelope",
    "parse_soap_response",
    "parse_soap_fault",
]
