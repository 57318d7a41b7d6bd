"""
tests.test_api
~~~~~~~~~~~~~~

REST + WebSocket 接口测试。

``TestClient`` 以上下文管理器方式使用，触发 lifespan，
每个用例拿到一个全新的 ``LocalBackend``（内存存储）。
"""
from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from streammates.main import app


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def _ack(action: str) -> dict[str, str]:
    return {"type": "ack", "action": action}


# ── REST ──────────────────────────────────────────────────────────────

class TestRoomsApi:
    """测试 rooms 集合的 REST 端点。"""

    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["storage"] == "memory"

    def test_insert_then_find_one(self, client: TestClient) -> None:
        room = {"id": "r1", "host": "alice", "users": []}

        inserted = client.post("/api/rooms", json=room).json()
        found = client.post("/api/rooms/find_one", json={"query": {"id": "r1"}}).json()

        assert inserted == {"code": 200, "data": room, "msg": "success"}
        assert found["data"] == room

    def test_find_one_missing_returns_null(self, client: TestClient) -> None:
        resp = client.post("/api/rooms/find_one", json={"query": {"id": "nope"}})

        assert resp.status_code == 200
        assert resp.json()["data"] is None

    def test_update_one_operators(self, client: TestClient) -> None:
        client.post("/api/rooms", json={"id": "r1", "users": [{"id": "u1"}, {"id": "u2"}]})

        resp = client.post(
            "/api/rooms/update_one",
            json={
                "query": {"id": "r1"},
                "update": {
                    "$set": {"title": "movie night"},
                    "$push": {"users": {"id": "u3"}},
                    "$pull": {"users": {"id": "u1"}},
                },
            },
        )
        found = client.post("/api/rooms/find_one", json={"query": {"id": "r1"}}).json()

        assert resp.json()["data"] == {"matched": True}
        assert found["data"] == {
            "id": "r1",
            "users": [{"id": "u2"}, {"id": "u3"}],
            "title": "movie night",
        }

    def test_update_one_no_match(self, client: TestClient) -> None:
        resp = client.post(
            "/api/rooms/update_one",
            json={"query": {"id": "ghost"}, "update": {"$set": {"x": 1}}},
        )

        assert resp.status_code == 200
        assert resp.json()["data"] == {"matched": False}

    def test_find_and_delete_one(self, client: TestClient) -> None:
        client.post("/api/rooms", json={"id": "r1", "host": "alice"})
        client.post("/api/rooms", json={"id": "r2", "host": "alice"})

        deleted = client.post("/api/rooms/delete_one", json={"query": {"id": "r1"}}).json()
        remaining = client.post("/api/rooms/find", json={"query": {"host": "alice"}}).json()

        assert deleted["data"] == {"matched": True}
        assert remaining["data"] == [{"id": "r2", "host": "alice"}]

    def test_insert_rejects_non_object(self, client: TestClient) -> None:
        resp = client.post("/api/rooms", json=[1, 2, 3])
        assert resp.status_code == 422

    def test_presence_empty_room(self, client: TestClient) -> None:
        resp = client.get("/api/rooms/empty/presence")

        assert resp.json()["data"] == {"room_id": "empty", "exists": False}


# ── WebSocket ─────────────────────────────────────────────────────────

class TestSignalWebSocket:
    """测试 /ws/signal 桥接。每条连接是一个独立上下文。"""

    def test_chat_between_two_sockets(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/signal") as alice, \
                client.websocket_connect("/ws/signal") as bob:
            bob.send_json({"type": "on", "event": "chat"})
            assert bob.receive_json() == _ack("on")
            bob.send_json({"type": "connect", "userId": "bob", "roomId": "r1"})
            assert bob.receive_json() == _ack("connect")

            alice.send_json({"type": "connect", "userId": "alice", "roomId": "r1"})
            assert alice.receive_json() == _ack("connect")
            alice.send_json({"type": "emit", "event": "chat", "data": "hi"})
            assert alice.receive_json() == _ack("emit")

            assert bob.receive_json() == {"type": "event", "event": "chat", "data": "hi"}

    def test_check_room_over_socket(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/signal") as host, \
                client.websocket_connect("/ws/signal") as guest:
            host.send_json({"type": "connect", "userId": "alice", "roomId": "r1"})
            assert host.receive_json() == _ack("connect")

            guest.send_json({"type": "check_room", "roomId": "r1"})
            assert guest.receive_json() == _ack("check_room")
            assert guest.receive_json() == {"type": "room_status", "roomId": "r1", "exists": True}

    def test_presence_endpoint_sees_socket_member(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/signal") as host:
            host.send_json({"type": "connect", "userId": "alice", "roomId": "r1"})
            assert host.receive_json() == _ack("connect")

            resp = client.get("/api/rooms/r1/presence")

        assert resp.json()["data"] == {"room_id": "r1", "exists": True}

    def test_invalid_frames_get_error(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/signal") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "connect", "userId": "alice"})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "teleport"})
            assert ws.receive_json()["type"] == "error"

    def test_socket_owns_a_bus(self, client: TestClient) -> None:
        before = client.get("/health").json()["buses"]
        with client.websocket_connect("/ws/signal") as ws:
            ws.send_json({"type": "connect", "userId": "alice", "roomId": "r1"})
            assert ws.receive_json() == _ack("connect")
            assert client.get("/health").json()["buses"] == before + 1
