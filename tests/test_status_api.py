import httpx
import pytest

from game_client import EventKind
from status_api.protocol import DiscordInfo
from status_api.server import create_app

from conftest import FakeGameClient, settle


def api_client(bridge, discord_info=None):
    app = create_app(bridge, discord_info=discord_info)
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.mark.asyncio
async def test_root_lists_endpoints(make_bridge):
    bridge = await make_bridge()
    async with api_client(bridge) as http:
        resp = await http.get("/")

    data = resp.json()
    assert resp.status_code == 200
    assert data["name"] == "Minecraft Discord Bot API"
    assert "POST /chat" in data["endpoints"]
    assert data["minecraft_server"] == "mc.test:25565"
    assert data["connected"] is False


@pytest.mark.asyncio
async def test_health(make_bridge):
    bridge = await make_bridge()
    info = lambda: DiscordInfo(connected=True, username="bridge#0001", guilds=2)
    async with api_client(bridge, discord_info=info) as http:
        resp = await http.get("/health")

    data = resp.json()
    assert data["status"] == "ok"
    assert data["timestamp"]
    assert data["minecraft"]["world"] == "Unknown"
    assert data["minecraft"]["coordinates"] == {"x": 0.0, "y": 0.0, "z": 0.0}
    assert data["discord"] == {"connected": True, "username": "bridge#0001", "guilds": 2}


@pytest.mark.asyncio
async def test_connect_chat_disconnect_flow(make_bridge):
    client = FakeGameClient()
    bridge = await make_bridge(client=client)

    async with api_client(bridge) as http:
        resp = await http.post("/connect")
        assert resp.json() == {"success": True, "message": "Connection initiated"}
        await settle(bridge.gate)

        again = await http.post("/connect")
        assert again.json()["success"] is False

        client.handle.emit(EventKind.LOGIN, username="Steve")
        client.handle.emit(EventKind.SPAWN, world="overworld", position=(1.0, 64.0, 2.0))
        await settle(bridge.gate)

        status = (await http.get("/status")).json()
        mc = status["minecraft"]
        assert mc["connected"] is True
        assert mc["username"] == "Steve"
        assert mc["world"] == "overworld"
        assert mc["coordinates"] == {"x": 1.0, "y": 64.0, "z": 2.0}
        assert mc["status_text"] == "connected as Steve"
        assert mc["server"] == "mc.test:25565"
        assert status["uptime"] >= 0

        chat = await http.post("/chat", json={"message": "hello from http"})
        assert chat.json() == {"success": True, "message": "Message sent"}
        assert client.handle.sent == ["hello from http"]

        bye = await http.post("/disconnect")
        assert bye.json()["success"] is True
        await settle(bridge.gate)

        mc = (await http.get("/status")).json()["minecraft"]
        assert mc["connected"] is False
        assert mc["should_join"] is False


@pytest.mark.asyncio
async def test_connect_operator_is_http(make_bridge):
    bridge = await make_bridge()
    async with api_client(bridge) as http:
        await http.post("/connect")
    assert bridge.supervisor.state.operator == "http"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"message": ""}, {"message": 5}, {"message": "   "}])
async def test_chat_rejects_invalid_payload(make_bridge, payload):
    bridge = await make_bridge()
    async with api_client(bridge) as http:
        resp = await http.post("/chat", json=payload)

    assert resp.status_code == 200
    assert resp.json() == {"success": False, "message": "Invalid message"}


@pytest.mark.asyncio
async def test_chat_while_disconnected(make_bridge):
    bridge = await make_bridge()
    async with api_client(bridge) as http:
        resp = await http.post("/chat", json={"message": "anyone?"})

    data = resp.json()
    assert data["success"] is False
    assert "not connected" in data["message"]


@pytest.mark.asyncio
async def test_unknown_route(make_bridge):
    bridge = await make_bridge()
    async with api_client(bridge) as http:
        resp = await http.get("/nope")

    assert resp.status_code == 404
    data = resp.json()
    assert data["success"] is False
    assert data["message"] == "Endpoint not found"
    assert "/chat" in data["available_endpoints"]
