# HTTP 入口：探针、事件入口、映射查询

import pytest
from aiohttp.test_utils import TestClient, TestServer

from webhook_relay.core.user_mapping import UserMappingRegistry
from webhook_relay.main import READY_KEY, create_app
from webhook_relay.storage import MemoryStore


@pytest.mark.asyncio
async def test_health_and_ready():
    registry = UserMappingRegistry(MemoryStore())
    app = create_app(registry)
    async with TestServer(app) as server:
        async with TestClient(server) as client:
            r = await client.get("/health")
            assert r.status == 200
            assert (await r.json()).get("status") == "ok"

            r = await client.get("/ready")
            assert r.status == 503
            assert (await r.json()).get("ready") is False

            await registry.initialize()
            app[READY_KEY].set()
            r = await client.get("/ready")
            assert r.status == 200
            data = await r.json()
            assert data.get("ready") is True
            assert data.get("mappings") == 0


@pytest.mark.asyncio
async def test_events_and_mappings():
    registry = UserMappingRegistry(MemoryStore())
    joined = {
        "data": {
            "id": "user-joined",
            "attributes": {
                "meeting": {"internal-meeting-id": "mtg-1"},
                "user": {"internal-user-id": "w_1", "external-user-id": "ext-1"},
            },
        }
    }
    left = {
        "data": {
            "id": "user-left",
            "attributes": {
                "meeting": {"internal-meeting-id": "mtg-1"},
                "user": {"internal-user-id": "w_1"},
            },
        }
    }
    async with TestServer(create_app(registry, is_ready=True)) as server:
        async with TestClient(server) as client:
            r = await client.post("/api/v1/events", json=joined)
            assert r.status == 200
            assert (await r.json())["applied"] is True

            r = await client.get("/api/v1/mappings")
            data = await r.json()
            assert data["total"] == 1
            assert data["items"][0] == {
                "id": "1",
                "internalUserID": "w_1",
                "externalUserID": "ext-1",
                "meetingId": "mtg-1",
            }

            r = await client.post("/api/v1/events", json=left)
            data = await r.json()
            assert data["event"]["data"]["attributes"]["user"]["external-user-id"] == "ext-1"
            assert registry.all() == []


@pytest.mark.asyncio
async def test_events_invalid_json():
    async with TestServer(create_app(UserMappingRegistry(MemoryStore()))) as server:
        async with TestClient(server) as client:
            r = await client.post("/api/v1/events", data="not json")
            assert r.status == 400
            assert (await r.json())["ok"] is False

            r = await client.post("/api/v1/events", json=[1, 2])
            assert r.status == 400
