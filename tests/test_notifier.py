import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from notifier import TRANSACTION_UPDATED, RoomManager, notify_transaction_changed


class RecordingSocket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    async def send_json(self, message) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)


def test_emit_reaches_only_the_users_room_and_drops_dead_sockets() -> None:
    manager = RoomManager()
    alive, dead, stranger = RecordingSocket(), RecordingSocket(fail=True), RecordingSocket()
    manager.join(1, alive)
    manager.join(1, dead)
    manager.join(2, stranger)

    delivered = asyncio.run(manager.emit(1, "ping", {"n": 1}))

    assert delivered == 1
    assert alive.sent == [{"event": "ping", "data": {"n": 1}}]
    assert stranger.sent == []
    assert manager.members(1) == [alive]


def test_leave_removes_empty_rooms() -> None:
    manager = RoomManager()
    socket = RecordingSocket()
    manager.join(7, socket)
    manager.leave(7, socket)
    manager.leave(7, socket)
    assert manager.members(7) == []
    assert 7 not in manager.rooms


def test_notify_never_raises() -> None:
    class BrokenManager:
        async def emit(self, *args):
            raise RuntimeError("boom")

    asyncio.run(notify_transaction_changed(1, "hello", manager=BrokenManager()))


def test_notify_sends_transaction_updated_event() -> None:
    manager = RoomManager()
    socket = RecordingSocket()
    manager.join(3, socket)

    asyncio.run(notify_transaction_changed(3, "A new transaction was added!", manager))

    assert socket.sent == [
        {
            "event": TRANSACTION_UPDATED,
            "data": {"message": "A new transaction was added!", "userId": 3},
        }
    ]


def signin(client) -> str:
    client.post(
        "/api/auth/signup",
        json={"username": "carol", "email": "carol@example.com", "password": "pw"},
    )
    return client.post(
        "/api/auth/signin", json={"username": "carol", "password": "pw"}
    ).json()["accessToken"]


def test_websocket_rejects_bad_token(client) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=junk") as ws:
            ws.receive_json()


def test_websocket_receives_transaction_events(client) -> None:
    token = signin(client)
    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"event": "join_room"})
        joined = ws.receive_json()
        assert joined["event"] == "joined"

        response = client.post(
            "/api/transactions",
            json={"amount": 10, "date": "2025-03-05", "type": "expense"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 201

        event = ws.receive_json()
        assert event["event"] == TRANSACTION_UPDATED
        assert event["data"]["message"] == "A new transaction was added!"
        assert event["data"]["userId"] == joined["data"]["userId"]
