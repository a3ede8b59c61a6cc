"""
HTTP API and WebSocket event channel.

Thin aiohttp layer over the ControlPoint boundary operations for the
browser UI. JSON routes return the same payloads the WebSocket events
carry.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

from aiohttp import WSMsgType, web

from upnp_explorer.config import Config
from upnp_explorer.control_point import ControlPoint, Result
from upnp_explorer.exceptions import ControlPointError
from upnp_explorer.upnp import Device

logger = logging.getLogger(__name__)

# Error code -> HTTP status
ERROR_STATUS = {
    "not_found": 404,
    "unsupported_action": 400,
    "invalid_argument": 400,
    "resolution_error": 502,
    "catalog_error": 502,
    "invocation_error": 502,
    "discovery_error": 503,
}

# UI shorthand for the transport state query
STATUS_ALIAS = "status"


def _error_response(error: ControlPointError) -> web.Response:
    status = ERROR_STATUS.get(error.code, 500)
    return web.json_response({"error": error.to_dict()}, status=status)


def _payload(result: Result) -> Any:
    """JSON-ready value of a successful result."""
    value = result.value
    if isinstance(value, list):
        return [item.to_dict() if hasattr(item, "to_dict") else item for item in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class ExplorerServer:
    """
    Serves the control point over HTTP.

    Routes:
        GET  /health
        GET  /api/devices
        POST /api/rescan
        GET  /api/devices/{udn}/services
        GET  /api/devices/{udn}/services/{service_id}/actions
        POST /api/devices/{udn}/actions/{action}
        GET  /ws
    """

    def __init__(self, config: Config, control_point: ControlPoint):
        self.config = config
        self.control_point = control_point

        # HTTP server components
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

        self._sockets: set[web.WebSocketResponse] = set()
        self._send_tasks: set[asyncio.Task] = set()

        control_point.on_device(self._broadcast_device)

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/api/devices", self._handle_devices)
        app.router.add_post("/api/rescan", self._handle_rescan)
        app.router.add_get("/api/devices/{udn}/services", self._handle_services)
        app.router.add_get(
            "/api/devices/{udn}/services/{service_id}/actions", self._handle_actions
        )
        app.router.add_post("/api/devices/{udn}/actions/{action}", self._handle_invoke)
        app.router.add_get("/ws", self._handle_ws)

        static_dir = self.config.server.static_dir
        if static_dir:
            app.router.add_get("/", self._handle_index)
            app.router.add_static("/", Path(static_dir), show_index=False)
        return app

    async def start(self) -> None:
        """Start aiohttp server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            self.config.server.bind_address,
            self.config.server.http_port,
        )
        await self._site.start()
        logger.info(
            f"HTTP server started at http://{self.config.server.bind_address}:"
            f"{self.config.server.http_port}"
        )

    async def stop(self) -> None:
        """Stop aiohttp server."""
        for ws in list(self._sockets):
            await ws.close()
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        logger.info("HTTP server stopped")

    # -------------------------------------------------------------------------
    # HTTP handlers
    # -------------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        cp = self.control_point
        return web.json_response(
            {
                "running": cp.is_running,
                "devices": len(cp.registry),
                "pending": cp.pending_resolutions,
                "resolved": cp.resolved_count,
                "failed": cp.failed_count,
            }
        )

    async def _handle_index(self, request: web.Request) -> web.StreamResponse:
        index = Path(self.config.server.static_dir) / "index.html"
        if not index.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(index)

    async def _handle_devices(self, request: web.Request) -> web.Response:
        """GET /api/devices"""
        result = self.control_point.list_devices()
        if not result.ok:
            assert result.error is not None
            return _error_response(result.error)
        return web.json_response(_payload(result))

    async def _handle_rescan(self, request: web.Request) -> web.Response:
        """POST /api/rescan"""
        target = request.query.get("st")
        result = self.control_point.rescan(target)
        if not result.ok:
            assert result.error is not None
            return _error_response(result.error)
        return web.json_response({"scanning": True}, status=202)

    async def _handle_services(self, request: web.Request) -> web.Response:
        """GET /api/devices/{udn}/services"""
        result = self.control_point.list_services(request.match_info["udn"])
        if not result.ok:
            assert result.error is not None
            return _error_response(result.error)
        return web.json_response(_payload(result))

    async def _handle_actions(self, request: web.Request) -> web.Response:
        """GET /api/devices/{udn}/services/{service_id}/actions"""
        result = await self.control_point.list_actions(
            request.match_info["udn"], request.match_info["service_id"]
        )
        if not result.ok:
            assert result.error is not None
            return _error_response(result.error)
        return web.json_response(_payload(result))

    async def _handle_invoke(self, request: web.Request) -> web.Response:
        """
        POST /api/devices/{udn}/actions/{action}

        Optional JSON body: {"serviceId": "...", "args": {...}}
        """
        body: dict = {}
        if request.can_read_body:
            try:
                body = await request.json()
            except json.JSONDecodeError:
                return web.json_response(
                    {"error": {"code": "bad_request", "message": "Invalid JSON"}}, status=400
                )
            if not isinstance(body, dict):
                return web.json_response(
                    {"error": {"code": "bad_request", "message": "Body must be an object"}},
                    status=400,
                )

        action = request.match_info["action"]
        if action == STATUS_ALIAS:
            action = "GetTransportInfo"

        result = await self.control_point.invoke(
            request.match_info["udn"], body.get("serviceId"), action, body.get("args")
        )
        if result.value is not None:
            status = 200 if result.ok else ERROR_STATUS.get(result.value.error.code, 500)  # type: ignore[union-attr]
            return web.json_response(result.value.to_dict(), status=status)
        assert result.error is not None
        return _error_response(result.error)

    # -------------------------------------------------------------------------
    # WebSocket event channel
    # -------------------------------------------------------------------------

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        """
        GET /ws

        Client messages: {"event": "devices"}, {"event": "rescan"},
        {"event": "services", "data": udn},
        {"event": "actions", "data": action, "serviceId": optional}.
        The device selected by the last "services" event is the target of
        "actions" unless the message names a "udn".
        """
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._sockets.add(ws)
        selected_udn: Optional[str] = None
        logger.debug("WebSocket client connected")

        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                try:
                    message = json.loads(msg.data)
                except json.JSONDecodeError:
                    await self._send(ws, "error", {"code": "bad_request", "message": "Invalid JSON"})
                    continue
                if not isinstance(message, dict):
                    await self._send(ws, "error", {"code": "bad_request", "message": "Expected an object"})
                    continue

                event = message.get("event")
                data = message.get("data")

                if event == "devices":
                    await self._send_result(ws, "devices", self.control_point.list_devices())
                elif event == "rescan":
                    await self._send_result(ws, "rescan", self.control_point.rescan())
                elif event == "services":
                    selected_udn = data
                    await self._send_result(
                        ws, "services", self.control_point.list_services(data or "")
                    )
                elif event == "actions":
                    udn = message.get("udn") or selected_udn or ""
                    service_id = message.get("serviceId")
                    if service_id and data is None:
                        result = await self.control_point.list_actions(udn, service_id)
                    else:
                        action = "GetTransportInfo" if data == STATUS_ALIAS else str(data)
                        result = await self.control_point.invoke(
                            udn, service_id, action, message.get("args")
                        )
                    await self._send_result(ws, "actions", result)
                else:
                    await self._send(
                        ws, "error", {"code": "bad_request", "message": f"Unknown event {event!r}"}
                    )
        finally:
            self._sockets.discard(ws)
            logger.debug("WebSocket client disconnected")

        return ws

    async def _send_result(self, ws: web.WebSocketResponse, event: str, result: Result) -> None:
        if result.value is not None and hasattr(result.value, "to_dict"):
            await self._send(ws, event, result.value.to_dict())
        elif result.ok:
            await self._send(ws, event, _payload(result))
        else:
            assert result.error is not None
            await self._send(ws, "error", result.error.to_dict())

    async def _send(self, ws: web.WebSocketResponse, event: str, data: Any) -> None:
        if ws.closed:
            return
        try:
            await ws.send_json({"event": event, "data": data})
        except ConnectionError as e:
            logger.debug(f"WebSocket send failed: {e}")

    def _broadcast_device(self, device: Device) -> None:
        """Push a newly resolved device to every connected client."""
        for ws in list(self._sockets):
            task = asyncio.create_task(self._send(ws, "device", device.to_dict()))
            self._send_tasks.add(task)
            task.add_done_callback(self._send_tasks.discard)


__all__ = ["ExplorerServer"]
