"""Tests for the HTTP server."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta

import pytest
from aiohttp import test_utils

from meshbot.memory.models import ConversationTurn
from meshbot.server import MeshServer


@pytest.fixture
def mesh_server(router, store, learning):
    return MeshServer(router=router, store=store, learning=learning)


@asynccontextmanager
async def client_for(mesh_server):
    client = test_utils.TestClient(test_utils.TestServer(mesh_server.create_app()))
    await client.start_server()
    try:
        yield client
    finally:
        await client.close()


class TestMessages:
    """POST /api/messages"""

    @pytest.mark.asyncio
    async def test_flat_payload(self, mesh_server):
        async with client_for(mesh_server) as client:
            resp = await client.post(
                "/api/messages",
                json={"userId": "u1", "text": "Preciso do fluxo de caixa de dezembro", "channelId": "webchat"},
            )
            assert resp.status == 200
            data = await resp.json()

        assert data["source"] == "skill"
        assert data["skill"] == "fluxo_caixa"
        assert "Saldo" in data["text"]

    @pytest.mark.asyncio
    async def test_activity_payload(self, mesh_server, store):
        activity = {
            "type": "message",
            "text": "conciliação do bradesco",
            "from": {"id": "29:abc", "name": "Ana"},
            "channelId": "msteams",
        }
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/messages", json=activity)
            assert resp.status == 200
            data = await resp.json()

        assert data["skill"] == "conciliacao"
        assert store.get_history("29:abc")[0].channel == "msteams"

    @pytest.mark.asyncio
    async def test_non_message_activity_ignored(self, mesh_server, provider):
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/messages", json={"type": "typing", "from": {"id": "u1"}})
            assert resp.status == 202
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_empty_text_greets(self, mesh_server):
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/messages", json={"userId": "u1", "text": "  "})
            data = await resp.json()
        assert data["text"] == "Oi! Em que posso ajudar?"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"text": "fluxo de caixa"},
        {"userId": "", "text": "oi"},
        {"userId": "u1", "text": 42},
        ["not", "an", "object"],
    ])
    async def test_invalid_payload_rejected(self, mesh_server, provider, store, body):
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/messages", json=body)
            assert resp.status == 400
            data = await resp.json()

        assert "error" in data
        assert provider.calls == []
        assert store.get_stats()["conversations"] == 0

    @pytest.mark.asyncio
    async def test_malformed_json(self, mesh_server):
        async with client_for(mesh_server) as client:
            resp = await client.post(
                "/api/messages", data="{not json", headers={"Content-Type": "application/json"}
            )
            assert resp.status == 400


class TestFeedback:
    """POST /api/feedback"""

    @pytest.mark.asyncio
    async def test_positive_feedback(self, mesh_server):
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/feedback", json={"userId": "u1", "feedback": "ótimo, muito bom"})
            assert resp.status == 200
            data = await resp.json()

        assert data["status"] == "received"
        assert data["satisfactionScore"] == 1.0
        assert data["feedbackCount"] == 1

    @pytest.mark.asyncio
    async def test_rating_only(self, mesh_server):
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/feedback", json={"userId": "u1", "satisfaction": 4})
            data = await resp.json()
        assert data["satisfactionScore"] == 0.75

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"userId": "u1"},
        {"userId": "u1", "satisfaction": 6},
        {"userId": "u1", "satisfaction": 0, "feedback": "bom"},
        {"satisfaction": 3},
    ])
    async def test_invalid_feedback(self, mesh_server, body):
        async with client_for(mesh_server) as client:
            resp = await client.post("/api/feedback", json=body)
            assert resp.status == 400


class TestInspection:
    """Read-only endpoints."""

    @pytest.mark.asyncio
    async def test_profile(self, mesh_server, store):
        store.save_turn("u1", "fluxo de caixa", "ok")
        async with client_for(mesh_server) as client:
            resp = await client.get("/api/users/u1/profile")
            data = await resp.json()

        assert data["user_id"] == "u1"
        assert data["preferred_topics"] == ["fluxo_caixa"]
        assert data["communication_style"] == "professional"
        assert data["conversations_this_week"] == 1
        assert len(data["preferred_hours"]) == 1

    @pytest.mark.asyncio
    async def test_profile_weekly_count_skips_old_turns(self, mesh_server, store):
        store._append_turn(ConversationTurn(
            user_id="u1",
            timestamp=datetime.now() - timedelta(days=8),
            user_text="DRE de março",
            bot_text="ok",
        ))
        store.save_turn("u1", "fluxo de caixa", "ok")
        store.save_turn("u1", "conciliação", "ok")
        async with client_for(mesh_server) as client:
            resp = await client.get("/api/users/u1/profile")
            data = await resp.json()

        assert data["total_interactions"] == 3
        assert data["conversations_this_week"] == 2

    @pytest.mark.asyncio
    async def test_history(self, mesh_server, store):
        for i in range(4):
            store.save_turn("u1", f"m{i}", "r")
        async with client_for(mesh_server) as client:
            resp = await client.get("/api/users/u1/history", params={"limit": "2"})
            data = await resp.json()

        assert data["count"] == 2
        assert [t["user_text"] for t in data["turns"]] == ["m2", "m3"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", ["abc", "0", "500"])
    async def test_history_bad_limit(self, mesh_server, limit):
        async with client_for(mesh_server) as client:
            resp = await client.get("/api/users/u1/history", params={"limit": limit})
            assert resp.status == 400

    @pytest.mark.asyncio
    async def test_stats(self, mesh_server, store):
        store.save_turn("u1", "a", "b")
        async with client_for(mesh_server) as client:
            resp = await client.get("/api/stats")
            data = await resp.json()

        assert data["users"] == 1
        assert data["conversations"] == 1
        assert [s["name"] for s in data["skills"]] == ["fluxo_caixa", "conciliacao"]

    @pytest.mark.asyncio
    async def test_health_and_root(self, mesh_server):
        async with client_for(mesh_server) as client:
            health = await (await client.get("/healthz")).json()
            root = await (await client.get("/")).json()

        assert health["status"] == "ok"
        assert root["name"] == "MESH"
        assert "POST /api/messages" in root["endpoints"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_apology(self, mesh_server, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("db gone")

        monkeypatch.setattr(mesh_server.store, "get_stats", explode)
        async with client_for(mesh_server) as client:
            resp = await client.get("/api/stats")
            data = await resp.json()

        assert resp.status == 500
        assert data["error"] == "Tive um problema técnico. Pode tentar novamente?"
