"""
Tests for the HTTP API.
"""
import httpx
import pytest

from marketmania.api.server import create_app
from marketmania.core.scheduler import RoundScheduler


@pytest.fixture
def scheduler(store, gateway, catalog):
    return RoundScheduler(store, gateway, catalog, speed_multiplier=1.0)


@pytest.fixture
async def client(store, scheduler):
    app = create_app(store, scheduler)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await scheduler.shutdown()


class TestReadEndpoints:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "active_rooms": 0}

    @pytest.mark.asyncio
    async def test_stocks_for_waiting_room(self, client, store):
        basket = await store.create_room("r1", round_time=30, num_rounds=3, num_stocks=2)
        response = await client.get("/api/game/r1/stocks")
        assert response.status_code == 200
        body = response.json()
        assert [s["name"] for s in body] == [s.name for s in basket]
        assert set(body[0]) == {"name", "price", "pe", "sectors", "totalVolume", "volatility"}

    @pytest.mark.asyncio
    async def test_stocks_unknown_room(self, client):
        response = await client.get("/api/game/nope/stocks")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_history(self, client, store):
        await store.append_history("r1", 1, "Alpha Corp", 100.0)
        response = await client.get("/api/game/r1/history")
        assert response.json() == [{"round_number": 1, "stock_name": "Alpha Corp", "price": 100.0}]

    @pytest.mark.asyncio
    async def test_state_of_waiting_room(self, client, store):
        await store.create_room("r1", round_time=30, num_rounds=3, num_stocks=2)
        body = (await client.get("/api/game/r1/state")).json()
        assert body["running"] is False
        assert body["status"] == "waiting"

    @pytest.mark.asyncio
    async def test_state_unknown_room(self, client):
        response = await client.get("/api/game/nope/state")
        assert response.status_code == 404


class TestStartEndpoint:

    @pytest.mark.asyncio
    async def test_start_then_duplicate(self, client, store, gateway):
        await store.create_room("r1", round_time=30, num_rounds=3, num_stocks=2)

        first = await client.post("/api/game/r1/start")
        assert first.status_code == 202
        assert first.json() == {"room_id": "r1", "started": True}

        second = await client.post("/api/game/r1/start")
        assert second.json()["started"] is False
        assert gateway.events_for("r1").count("game-started") == 1

        state = (await client.get("/api/game/r1/state")).json()
        assert state["running"] is True
        assert state["status"] == "in_progress"
        assert state["phase"] == "PREVIEWING"
        assert state["round_count"] == 3

    @pytest.mark.asyncio
    async def test_start_unknown_room(self, client):
        response = await client.post("/api/game/nope/start")
        assert response.status_code == 404
