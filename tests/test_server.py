"""Tests for the HTTP API and WebSocket event channel."""

from typing import AsyncIterator

import pytest
from aiohttp import test_utils

from conftest import (
    AVT_ID,
    CONTROL_URL,
    LOCATION,
    SCPD_URL,
    SCPD_XML,
    UDN,
    FakeListener,
    FakeResponse,
    FakeSession,
    device_xml,
    soap_fault,
    soap_response,
)
from upnp_explorer.config import Config
from upnp_explorer.control_point import ControlPoint
from upnp_explorer.server import ExplorerServer
from upnp_explorer.upnp import DiscoveryResponse


@pytest.fixture
async def control_point(
    config: Config, fake_session: FakeSession, fake_listener: FakeListener
) -> AsyncIterator[ControlPoint]:
    """Running control point with one resolved renderer."""
    fake_session.add(LOCATION, FakeResponse(200, device_xml()))
    cp = ControlPoint(config, session=fake_session, listener=fake_listener)  # type: ignore[arg-type]
    await cp.start()
    fake_listener.deliver(DiscoveryResponse("ssdp:all", LOCATION, "192.168.1.50"))
    await cp.wait_idle()
    yield cp
    await cp.stop()


@pytest.fixture
async def client(config: Config, control_point: ControlPoint) -> AsyncIterator[test_utils.TestClient]:
    server = ExplorerServer(config, control_point)
    async with test_utils.TestClient(test_utils.TestServer(server.build_app())) as test_client:
        yield test_client


class TestHttpApi:
    """Tests for the JSON routes."""

    @pytest.mark.asyncio
    async def test_health(self, client: test_utils.TestClient) -> None:
        resp = await client.get("/health")
        assert resp.status == 200
        data = await resp.json()
        assert data["running"] is True
        assert data["devices"] == 1
        assert data["resolved"] == 1

    @pytest.mark.asyncio
    async def test_devices(self, client: test_utils.TestClient) -> None:
        resp = await client.get("/api/devices")
        assert resp.status == 200
        devices = await resp.json()
        assert len(devices) == 1
        assert devices[0]["udn"] == UDN
        assert devices[0]["friendlyName"] == "Living Room"
        assert devices[0]["services"][0]["serviceId"] == AVT_ID

    @pytest.mark.asyncio
    async def test_rescan(self, client: test_utils.TestClient, fake_listener: FakeListener) -> None:
        resp = await client.post("/api/rescan", params={"st": "upnp:rootdevice"})
        assert resp.status == 202
        assert fake_listener.searches == ["upnp:rootdevice"]

    @pytest.mark.asyncio
    async def test_rescan_failure(self, client: test_utils.TestClient, fake_listener: FakeListener) -> None:
        fake_listener.send_ok = False
        resp = await client.post("/api/rescan")
        assert resp.status == 503
        data = await resp.json()
        assert data["error"]["code"] == "discovery_error"

    @pytest.mark.asyncio
    async def test_services(self, client: test_utils.TestClient) -> None:
        resp = await client.get(f"/api/devices/{UDN}/services")
        assert resp.status == 200
        services = await resp.json()
        assert [s["serviceId"] for s in services][0] == AVT_ID
        assert services[0]["controlURL"] == "/upnp/control/AVTransport1"

    @pytest.mark.asyncio
    async def test_services_unknown_device(self, client: test_utils.TestClient) -> None:
        resp = await client.get("/api/devices/uuid:nope/services")
        assert resp.status == 404
        data = await resp.json()
        assert data["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_actions(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        fake_session.add(SCPD_URL, FakeResponse(200, SCPD_XML))
        resp = await client.get(f"/api/devices/{UDN}/services/{AVT_ID}/actions")
        assert resp.status == 200
        data = await resp.json()
        assert [a["name"] for a in data["actions"]] == ["Play", "Pause", "GetTransportInfo"]

    @pytest.mark.asyncio
    async def test_actions_fetch_failure(self, client: test_utils.TestClient) -> None:
        resp = await client.get(f"/api/devices/{UDN}/services/{AVT_ID}/actions")
        assert resp.status == 502
        assert (await resp.json())["error"]["code"] == "catalog_error"

    @pytest.mark.asyncio
    async def test_invoke_play(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        fake_session.add(CONTROL_URL, FakeResponse(200, soap_response("Play")))
        resp = await client.post(f"/api/devices/{UDN}/actions/Play")
        assert resp.status == 200
        assert await resp.json() == {"action": "Play", "ok": True}

    @pytest.mark.asyncio
    async def test_invoke_status_alias(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        fake_session.add(
            CONTROL_URL,
            FakeResponse(200, soap_response("GetTransportInfo", {"CurrentTransportState": "PLAYING"})),
        )
        resp = await client.post(f"/api/devices/{UDN}/actions/status", json={"serviceId": AVT_ID})
        assert resp.status == 200
        data = await resp.json()
        assert data["state"] == "PLAYING"

    @pytest.mark.asyncio
    async def test_invoke_unsupported(self, client: test_utils.TestClient) -> None:
        resp = await client.post(f"/api/devices/{UDN}/actions/Eject")
        assert resp.status == 400
        data = await resp.json()
        assert data["ok"] is False
        assert data["error"]["code"] == "unsupported_action"

    @pytest.mark.asyncio
    async def test_invoke_invalid_argument_name(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        resp = await client.post(
            f"/api/devices/{UDN}/actions/Play",
            json={"args": {"Speed></u:Play><u:Stop><x": "1"}},
        )
        assert resp.status == 400
        data = await resp.json()
        assert data["error"]["code"] == "invalid_argument"
        assert fake_session.requests_to(CONTROL_URL) == []

    @pytest.mark.asyncio
    async def test_invoke_fault(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        fake_session.add(CONTROL_URL, FakeResponse(500, soap_fault("701", "Transition not available")))
        resp = await client.post(f"/api/devices/{UDN}/actions/Next")
        assert resp.status == 502
        data = await resp.json()
        assert data["error"]["upnpErrorCode"] == "701"

    @pytest.mark.asyncio
    async def test_invoke_unknown_device(self, client: test_utils.TestClient) -> None:
        resp = await client.post("/api/devices/uuid:nope/actions/Play")
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_invoke_invalid_json(self, client: test_utils.TestClient) -> None:
        resp = await client.post(
            f"/api/devices/{UDN}/actions/Play",
            data="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status == 400


class TestWebSocket:
    """Tests for the /ws event channel."""

    @pytest.mark.asyncio
    async def test_devices_event(self, client: test_utils.TestClient) -> None:
        async with client.ws_connect("/ws") as ws:
            await ws.send_json({"event": "devices"})
            message = await ws.receive_json()
        assert message["event"] == "devices"
        assert message["data"][0]["udn"] == UDN

    @pytest.mark.asyncio
    async def test_services_then_actions(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        fake_session.add(CONTROL_URL, FakeResponse(200, soap_response("Pause")))
        async with client.ws_connect("/ws") as ws:
            await ws.send_json({"event": "services", "data": UDN})
            services = await ws.receive_json()
            await ws.send_json({"event": "actions", "data": "Pause"})
            actions = await ws.receive_json()

        assert services["event"] == "services"
        assert services["data"][0]["serviceId"] == AVT_ID
        assert actions == {"event": "actions", "data": {"action": "Pause", "ok": True}}

    @pytest.mark.asyncio
    async def test_action_catalog_event(self, client: test_utils.TestClient, fake_session: FakeSession) -> None:
        fake_session.add(SCPD_URL, FakeResponse(200, SCPD_XML))
        async with client.ws_connect("/ws") as ws:
            await ws.send_json({"event": "actions", "udn": UDN, "serviceId": AVT_ID})
            message = await ws.receive_json()
        assert message["event"] == "actions"
        assert message["data"]["serviceId"] == AVT_ID

    @pytest.mark.asyncio
    async def test_rescan_event(self, client: test_utils.TestClient, fake_listener: FakeListener) -> None:
        async with client.ws_connect("/ws") as ws:
            await ws.send_json({"event": "rescan"})
            message = await ws.receive_json()
        assert message == {"event": "rescan", "data": True}
        assert fake_listener.searches == ["ssdp:all"]

    @pytest.mark.asyncio
    async def test_unknown_device_error_event(self, client: test_utils.TestClient) -> None:
        async with client.ws_connect("/ws") as ws:
            await ws.send_json({"event": "services", "data": "uuid:nope"})
            message = await ws.receive_json()
        assert message["event"] == "error"
        assert message["data"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_bad_messages(self, client: test_utils.TestClient) -> None:
        async with client.ws_connect("/ws") as ws:
            await ws.send_str("not json")
            invalid = await ws.receive_json()
            await ws.send_json({"event": "teleport"})
            unknown = await ws.receive_json()
        assert invalid["event"] == "error"
        assert unknown["data"]["code"] == "bad_request"

    @pytest.mark.asyncio
    async def test_device_broadcast(
        self, client: test_utils.TestClient, fake_session: FakeSession, fake_listener: FakeListener
    ) -> None:
        other = "http://192.168.1.60:1400/xml/device_description.xml"
        fake_session.add(other, FakeResponse(200, device_xml("Kitchen", "uuid:kitchen")))
        async with client.ws_connect("/ws") as ws:
            # Round-trip so the socket is registered before the broadcast
            await ws.send_json({"event": "devices"})
            await ws.receive_json()
            fake_listener.deliver(DiscoveryResponse("ssdp:all", other, "192.168.1.60"))
            message = await ws.receive_json(timeout=2)
        assert message["event"] == "device"
        assert message["data"]["friendlyName"] == "Kitchen"

    @pytest.mark.asyncio
    async def test_binary_frames_ignored(self, client: test_utils.TestClient) -> None:
        async with client.ws_connect("/ws") as ws:
            await ws.send_bytes(b"\x00\x01")
            await ws.send_json({"event": "devices"})
            message = await ws.receive_json()
        assert message["event"] == "devices"
        assert isinstance(message["data"], list)


class TestStaticFiles:
    """Tests for serving the browser UI."""

    @pytest.mark.asyncio
    async def test_index_and_assets(self, tmp_path, config: Config, control_point: ControlPoint) -> None:
        (tmp_path / "index.html").write_text("<html>explorer</html>")
        (tmp_path / "app.js").write_text("console.log('hi');")
        config.server.static_dir = str(tmp_path)
        server = ExplorerServer(config, control_point)

        async with test_utils.TestClient(test_utils.TestServer(server.build_app())) as client:
            index = await client.get("/")
            index_text = await index.text()
            script = await client.get("/app.js")
            api = await client.get("/api/devices")

        assert index.status == 200
        assert "explorer" in index_text
        assert script.status == 200
        assert api.status == 200

    @pytest.mark.asyncio
    async def test_no_static_dir(self, client: test_utils.TestClient) -> None:
        resp = await client.get("/")
        assert resp.status == 404
