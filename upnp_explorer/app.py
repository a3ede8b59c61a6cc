"""
UPnP Explorer Application.

Main orchestrator that wires together all components and manages lifecycle.
"""

import asyncio
import logging
import signal
from typing import Optional

from upnp_explorer.config import Config
from upnp_explorer.control_point import ControlPoint
from upnp_explorer.server import ExplorerServer

logger = logging.getLogger(__name__)


class UPnPExplorer:
    """
    Main UPnP Explorer application.

    Orchestrates:
    - Control point (SSDP discovery, registry, control)
    - HTTP API / WebSocket server

    Usage:
        config = load_config(...)
        app = UPnPExplorer(config)
        await app.run()
    """

    def __init__(self, config: Config):
        self._config = config
        self._is_running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self._control_point: Optional[ControlPoint] = None
        self._server: Optional[ExplorerServer] = None

    @property
    def control_point(self) -> Optional[ControlPoint]:
        return self._control_point

    async def start(self) -> None:
        """
        Start the control point and the HTTP server.

        Startup order:
        1. Control point (HTTP session, SSDP socket)
        2. HTTP server
        3. Initial scan (if enabled)

        Raises:
            OSError: If the HTTP server cannot bind
        """
        logger.info("Starting UPnP Explorer...")

        self._control_point = ControlPoint(self._config)
        await self._control_point.start()

        self._server = ExplorerServer(self._config, self._control_point)
        await self._server.start()

        if self._config.discovery.scan_on_start:
            result = self._control_point.rescan()
            if not result.ok:
                logger.warning(f"Initial scan failed: {result.error}")

        self._is_running = True
        logger.info("UPnP Explorer started")

    async def stop(self) -> None:
        """
        Stop all components.

        Shutdown order (reverse of startup):
        1. Stop HTTP server
        2. Stop control point
        """
        logger.info("Stopping UPnP Explorer...")
        self._is_running = False

        if self._server:
            try:
                await self._server.stop()
            except Exception as e:
                logger.warning(f"Error stopping HTTP server: {e}")

        if self._control_point:
            try:
                await self._control_point.stop()
            except Exception as e:
                logger.warning(f"Error stopping control point: {e}")

        logger.info("UPnP Explorer stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        """
        Run UPnP Explorer until interrupted.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                pass  # Windows event loops

        try:
            await self.start()

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        finally:
            await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running
