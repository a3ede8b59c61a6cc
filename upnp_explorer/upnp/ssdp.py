"""
SSDP Discovery Listener

Sends M-SEARCH requests to the SSDP multicast group and delivers every
response to registered callbacks. No de-duplication happens here: the same
device answering on several interfaces, or to repeated searches, produces one
event per datagram.
"""

import asyncio
import logging
import re
import socket
from typing import Callable, Optional

from upnp_explorer.exceptions import DiscoveryError

from .types import DiscoveryResponse

logger = logging.getLogger(__name__)

# SSDP constants
SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900
SSDP_MX = 3  # Maximum wait time in seconds
SSDP_ALL = "ssdp:all"

_MAX_AGE_RE = re.compile(r"max-age\s*=\s*(\d+)", re.IGNORECASE)

ResponseCallback = Callable[[DiscoveryResponse], None]
ErrorCallback = Callable[[DiscoveryError], None]


def build_msearch(search_target: str = SSDP_ALL, mx: int = SSDP_MX) -> bytes:
    """Build an M-SEARCH request."""
    return (
        "M-SEARCH * HTTP/1.1\r\n"
        f"HOST: {SSDP_ADDR}:{SSDP_PORT}\r\n"
        'MAN: "ssdp:discover"\r\n'
        f"MX: {mx}\r\n"
        f"ST: {search_target}\r\n"
        "\r\n"
    ).encode("utf-8")


def parse_ssdp_response(data: bytes, source_ip: str) -> DiscoveryResponse:
    """
    Parse an SSDP search response datagram.

    Args:
        data: Raw datagram payload
        source_ip: Address the datagram came from

    Returns:
        Parsed DiscoveryResponse

    Raises:
        DiscoveryError: If the datagram is not a response or has no LOCATION
    """
    text = data.decode("utf-8", errors="ignore")
    lines = text.split("\r\n")
    status_line = lines[0].strip() if lines else ""

    if not status_line.upper().startswith("HTTP/"):
        raise DiscoveryError(f"Not an SSDP response from {source_ip}: {status_line[:60]!r}")

    headers: dict[str, str] = {}
    for line in lines[1:]:  # Skip first line (HTTP status)
        if ":" in line:
            key, value = line.split(":", 1)
            headers[key.upper().strip()] = value.strip()

    location = headers.get("LOCATION", "")
    if not location:
        raise DiscoveryError(f"SSDP response from {source_ip} has no LOCATION header")

    max_age = 0
    match = _MAX_AGE_RE.search(headers.get("CACHE-CONTROL", ""))
    if match:
        max_age = int(match.group(1))

    return DiscoveryResponse(
        search_target=headers.get("ST", ""),
        location=location,
        address=source_ip,
        usn=headers.get("USN", ""),
        server=headers.get("SERVER", ""),
        max_age=max_age,
        headers=headers,
    )


class _SearchProtocol(asyncio.DatagramProtocol):
    """Datagram protocol forwarding every packet to the listener."""

    def __init__(self, listener: "DiscoveryListener"):
        self._listener = listener

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._listener._handle_datagram(data, addr[0])

    def error_received(self, exc: Exception) -> None:
        self._listener._emit_error(DiscoveryError(f"SSDP socket error: {exc}", exc))


class DiscoveryListener:
    """
    SSDP search client.

    Usage:
        listener = DiscoveryListener()
        listener.on_response(lambda r: print(r.location))
        await listener.start()
        listener.search("ssdp:all")
        await asyncio.sleep(5)
        listener.stop()
    """

    def __init__(self, mx: int = SSDP_MX, bind_address: str = "0.0.0.0") -> None:
        self.mx = mx
        self.bind_address = bind_address
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._response_callbacks: list[ResponseCallback] = []
        self._error_callbacks: list[ErrorCallback] = []

    @property
    def is_running(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    def on_response(self, callback: ResponseCallback) -> None:
        """Register callback for each parsed response."""
        self._response_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        """Register callback for malformed responses and socket errors."""
        self._error_callbacks.append(callback)

    async def start(self) -> None:
        """
        Open the UDP socket responses arrive on.

        Raises:
            DiscoveryError: If the socket cannot be opened
        """
        if self.is_running:
            return

        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SearchProtocol(self),
                local_addr=(self.bind_address, 0),
                family=socket.AF_INET,
            )
        except OSError as e:
            raise DiscoveryError(f"Could not open SSDP socket: {e}", e)

        sock = transport.get_extra_info("socket")
        if sock is not None:
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
            except OSError as e:
                logger.debug(f"Could not set multicast TTL: {e}")

        self._transport = transport  # type: ignore[assignment]
        logger.debug(f"SSDP listener bound to {transport.get_extra_info('sockname')}")

    def stop(self) -> None:
        """Close the UDP socket."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.debug("SSDP listener stopped")

    def search(self, search_target: str = SSDP_ALL) -> bool:
        """
        Send an M-SEARCH request and return immediately.

        Responses are delivered to on_response callbacks as they arrive.
        Each call is independent of earlier ones.

        Returns:
            True if the request was sent
        """
        if not self.is_running:
            self._emit_error(DiscoveryError("SSDP listener is not started"))
            return False

        assert self._transport is not None
        try:
            self._transport.sendto(build_msearch(search_target, self.mx), (SSDP_ADDR, SSDP_PORT))
        except OSError as e:
            self._emit_error(DiscoveryError(f"Failed to send M-SEARCH: {e}", e))
            return False

        logger.debug(f"Sent SSDP M-SEARCH for {search_target}")
        return True

    def _handle_datagram(self, data: bytes, source_ip: str) -> None:
        try:
            response = parse_ssdp_response(data, source_ip)
        except DiscoveryError as e:
            self._emit_error(e)
            return

        logger.debug(f"SSDP response from {source_ip}: ST={response.search_target} {response.location}")
        for callback in list(self._response_callbacks):
            try:
                callback(response)
            except Exception as e:
                logger.error(f"Error in SSDP response callback: {e}", exc_info=True)

    def _emit_error(self, error: DiscoveryError) -> None:
        logger.debug(f"SSDP discovery error: {error}")
        for callback in list(self._error_callbacks):
            try:
                callback(error)
            except Exception as e:
                logger.error(f"Error in SSDP error callback: {e}", exc_info=True)


__all__ = [
    "DiscoveryListener",
    "SSDP_ADDR",
    "SSDP_PORT",
    "SSDP_ALL",
    "build_msearch",
    "parse_ssdp_response",
]
