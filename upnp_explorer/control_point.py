"""
UPnP control point.

Wires the discovery listener, descriptor resolver, registry, catalog
resolver and invoker together, and exposes the boundary operations the UI
layer consumes. Boundary operations never raise: every failure comes back
as a typed error inside a Result.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

import aiohttp
from aiohttp import ClientTimeout

from upnp_explorer.config import Config
from upnp_explorer.exceptions import (
    CatalogError,
    ControlPointError,
    DiscoveryError,
    InvocationError,
    NotFoundError,
    ResolutionError,
)
from upnp_explorer.upnp import (
    ActionCatalog,
    ActionCatalogResolver,
    ActionInvoker,
    DescriptorResolver,
    Device,
    DeviceRegistry,
    DiscoveryListener,
    DiscoveryResponse,
    InvocationResult,
    Service,
    find_av_transport,
    find_service,
    services_for,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DeviceCallback = Callable[[Device], None]


@dataclass
class Result(Generic[T]):
    """Value or typed failure returned by every boundary operation."""

    value: Optional[T] = None
    error: Optional[ControlPointError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ControlPoint:
    """
    UPnP control point.

    Usage:
        control_point = ControlPoint(config)
        await control_point.start()
        devices = await control_point.discover()
        result = await control_point.invoke(devices[0].udn, None, "Play")
        await control_point.stop()

    Descriptor fetches started by one scan are not cancelled by a later
    rescan. A resolution that completes after a newer scan started is still
    applied, so the registry is eventually consistent with the network.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        session: Optional[aiohttp.ClientSession] = None,
        listener: Optional[DiscoveryListener] = None,
        registry: Optional[DeviceRegistry] = None,
    ):
        """
        Initialize control point.

        Args:
            config: Application configuration (defaults if omitted)
            session: Shared HTTP session; created and owned if omitted
            listener: SSDP listener; created if omitted
            registry: Device registry; created from config if omitted
        """
        self._config = config or Config()
        self._session = session
        self._owns_session = session is None
        self._listener = listener or DiscoveryListener(mx=self._config.discovery.mx)
        self.registry = registry or DeviceRegistry(
            identity=self._config.registry.identity,
            ttl=self._config.registry.ttl,
        )

        self._resolver: Optional[DescriptorResolver] = None
        self._catalog: Optional[ActionCatalogResolver] = None
        self._invoker: Optional[ActionInvoker] = None

        # In-flight descriptor fetches, by location
        self._tasks: set[asyncio.Task] = set()
        self._inflight: set[str] = set()
        self._device_callbacks: list[DeviceCallback] = []
        self._last_discovery_error: Optional[DiscoveryError] = None
        self._is_running = False

        self.resolved_count = 0
        self.failed_count = 0

        self._listener.on_response(self._on_response)
        self._listener.on_error(self._on_discovery_error)

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def pending_resolutions(self) -> int:
        return len(self._tasks)

    def on_device(self, callback: DeviceCallback) -> None:
        """Register callback for every device upserted into the registry."""
        self._device_callbacks.append(callback)

    async def start(self) -> None:
        """
        Create the HTTP session and open the SSDP socket.

        A socket failure is logged and leaves the control point usable for
        devices already known; rescan() will report the DiscoveryError.
        """
        if self._is_running:
            return

        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self._config.control.timeout)
            )
            self._owns_session = True

        self._resolver = DescriptorResolver(self._session)
        self._catalog = ActionCatalogResolver(self._session)
        self._invoker = ActionInvoker(
            self._session,
            retries=self._config.control.retries,
            retry_delay=self._config.control.retry_delay,
        )

        try:
            await self._listener.start()
        except DiscoveryError as e:
            logger.error(f"SSDP discovery unavailable: {e}")
            self._last_discovery_error = e

        self._is_running = True
        logger.info("Control point started")

    async def stop(self) -> None:
        """Cancel pending resolutions, close the socket and owned session."""
        if not self._is_running:
            return

        self._is_running = False
        self._listener.stop()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._inflight.clear()

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

        logger.info("Control point stopped")

    # =========================================================================
    # Boundary operations
    # =========================================================================

    def list_devices(self) -> Result[list[Device]]:
        """All known devices, ordered by friendly name."""
        try:
            self.registry.evict_stale()
            return Result(value=self.registry.all())
        except Exception as e:
            logger.exception(f"Unexpected error listing devices: {e}")
            return Result(error=ControlPointError(f"Failed to list devices: {e}", e))

    def rescan(self, search_target: Optional[str] = None) -> Result[bool]:
        """
        Send a new M-SEARCH request.

        Returns immediately; devices appear in list_devices() as their
        descriptors resolve.
        """
        target = search_target or self._config.discovery.search_target
        self.registry.evict_stale()
        self._last_discovery_error = None

        if self._listener.search(target):
            logger.info(f"Scanning for UPnP devices ({target})")
            return Result(value=True)

        error = self._last_discovery_error or DiscoveryError("M-SEARCH was not sent")
        return Result(value=False, error=error)

    def list_services(self, udn: str) -> Result[list[Service]]:
        """Services of the device with this UDN."""
        try:
            return Result(value=services_for(self._find_device(udn)))
        except ControlPointError as e:
            return Result(error=e)

    async def list_actions(self, udn: str, service_id: str) -> Result[ActionCatalog]:
        """Action catalog of a device's service."""
        try:
            device = self._find_device(udn)
            service = find_service(device, service_id)
            assert self._catalog is not None
            return Result(value=await self._catalog.actions_for(device, service))
        except ControlPointError as e:
            if isinstance(e, CatalogError):
                logger.warning(str(e))
            return Result(error=e)
        except Exception as e:
            logger.exception(f"Unexpected error loading actions for {service_id}: {e}")
            return Result(error=CatalogError(service_id, e))

    async def invoke(
        self,
        udn: str,
        service_id: Optional[str],
        action: str,
        args: Optional[Mapping[str, Any]] = None,
    ) -> Result[InvocationResult]:
        """
        Invoke a transport action.

        Args:
            udn: Target device UDN
            service_id: AVTransport serviceId; the device's first
                AVTransport service is used when None
            action: Play, Pause, Next, Prev or GetTransportInfo
            args: Extra or overriding action arguments
        """
        try:
            device = self._find_device(udn)
            if service_id:
                service = find_service(device, service_id)
            else:
                service = find_av_transport(device)
            assert self._invoker is not None
            result = await self._invoker.invoke(device, service, action, args)
        except ControlPointError as e:
            return Result(error=e)
        except Exception as e:
            logger.exception(f"Unexpected error invoking {action}: {e}")
            return Result(error=InvocationError(action, e))

        if result.ok:
            logger.info(f"{action} on {device.friendly_name!r}: ok")
        return Result(value=result, error=result.error)

    # =========================================================================
    # Convenience
    # =========================================================================

    async def discover(self, timeout: Optional[float] = None) -> list[Device]:
        """
        Run one discovery round.

        Waits the collection window after probing; resolutions still in
        flight after the window are not included.
        """
        window = timeout if timeout is not None else self._config.discovery.collection_window
        self.rescan()
        await asyncio.sleep(window)
        return self.list_devices().value or []

    async def wait_idle(self) -> None:
        """Wait until every in-flight resolution has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _find_device(self, udn: str) -> Device:
        if not self._is_running:
            raise ControlPointError("Control point is not running")
        device = self.registry.find_by_udn(udn)
        if not isinstance(device, Device):
            raise NotFoundError(f"Device {udn!r} not found")
        return device

    def _on_response(self, response: DiscoveryResponse) -> None:
        """Start a descriptor fetch for a discovery response."""
        if not self._is_running or self._resolver is None:
            return
        if response.location in self._inflight:
            logger.debug(f"Descriptor fetch already in flight for {response.location}")
            return

        location = response.location
        self._inflight.add(location)
        task = asyncio.create_task(self._resolve(response))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # Runs even when the task is cancelled before it starts
        task.add_done_callback(lambda _: self._inflight.discard(location))

    def _on_discovery_error(self, error: DiscoveryError) -> None:
        self._last_discovery_error = error
        logger.debug(f"Discovery error: {error}")

    async def _resolve(self, response: DiscoveryResponse) -> None:
        """Resolve one response and upsert the result. Never raises."""
        assert self._resolver is not None
        try:
            device = await self._resolver.resolve(response)
        except ResolutionError as e:
            self.failed_count += 1
            logger.warning(str(e))
            return
        except Exception as e:
            self.failed_count += 1
            logger.exception(f"Unexpected error resolving {response.location}: {e}")
            return

        self.resolved_count += 1
        self.registry.upsert(response.location, device)

        for callback in list(self._device_callbacks):
            try:
                callback(device)
            except Exception as e:
                logger.error(f"Error in device callback: {e}", exc_info=True)


__all__ = ["ControlPoint", "Result"]
