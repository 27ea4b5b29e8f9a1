"""Notification inbox, dispatcher and live feed."""
import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from edgeup.main import create_app
from edgeup.models import Notification
from edgeup.services.notification_service import NotificationService
from tests.conftest import FakeRedis


class FakePubSub:
    """Replays queued messages, then blocks like an idle subscription."""

    def __init__(self, events, backlog):
        self.events = events
        self.backlog = backlog

    async def subscribe(self, channel):
        self.events.append(("subscribe", channel))

    async def listen(self):
        try:
            for message in self.backlog:
                yield message
            await asyncio.Event().wait()
        finally:
            self.events.append("listen_closed")

    async def unsubscribe(self):
        self.events.append("unsubscribe")

    async def aclose(self):
        self.events.append("aclose")


class FakeAsyncRedis:

    def __init__(self, backlog):
        self.events = []
        self.backlog = backlog

    def pubsub(self):
        return FakePubSub(self.events, self.backlog)


def send(client, admin, user, message="Welcome!", kind="system"):
    return client.post("/notification", headers=admin["headers"], json={
        "userId": user["id"], "message": message, "type": kind
    })


def test_admin_sends_notification(client, admin, buyer, redis_client):
    response = send(client, admin, buyer)

    assert response.status_code == 201
    body = response.json()
    assert body["id_user"] == buyer["id"]
    assert body["is_read"] is False
    assert redis_client.messages_for(buyer["id"])[0]["message"] == "Welcome!"


def test_only_admin_sends(client, buyer, seller):
    assert send(client, seller, buyer).status_code == 403


def test_invalid_type(client, admin, buyer):
    assert send(client, admin, buyer, kind="spam").status_code == 400


def test_unknown_recipient(client, admin):
    assert send(client, admin, {"id": "ghost"}).status_code == 404


def test_inbox_newest_first(client, admin, buyer):
    send(client, admin, buyer, message="first")
    send(client, admin, buyer, message="second")

    inbox = client.get("/my-notifications", headers=buyer["headers"]).json()

    assert [n["message"] for n in inbox] == ["second", "first"]


def test_mark_read_and_read_all(client, admin, buyer, seller):
    first = send(client, admin, buyer).json()["id"]
    send(client, admin, buyer)
    send(client, admin, buyer)

    assert client.put(f"/notification/{first}/read", headers=seller["headers"]).status_code == 404
    assert client.put(f"/notification/{first}/read", headers=buyer["headers"]).status_code == 200

    response = client.put("/my-notifications/read-all", headers=buyer["headers"])
    assert response.json()["count"] == 2
    assert all(n["is_read"] for n in client.get("/my-notifications", headers=buyer["headers"]).json())


def test_delete_only_own(client, admin, buyer, seller):
    notification_id = send(client, admin, buyer).json()["id"]

    assert client.delete(f"/notification/{notification_id}", headers=seller["headers"]).status_code == 404
    assert client.delete(f"/notification/{notification_id}", headers=buyer["headers"]).status_code == 200
    assert client.get("/my-notifications", headers=buyer["headers"]).json() == []


def test_publish_failure_keeps_row(session_factory, buyer):
    service = NotificationService(FakeRedis(fail=True))

    with session_factory() as db:
        notification = service.notify(db, buyer["id"], "Hello", "system")

        assert service.publish(notification) is False
        assert db.query(Notification).count() == 1


def test_record_leaves_commit_to_caller(session_factory, buyer):
    service = NotificationService(FakeRedis())

    with session_factory() as db:
        service.record(db, buyer["id"], "Pending", "order")
        db.rollback()

        assert db.query(Notification).count() == 0


def test_feed_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/notifications?token=garbage"):
            pass

    assert exc.value.code == 1008


def test_feed_requires_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/notifications"):
            pass

    assert exc.value.code == 1008


def test_feed_relays_channel_and_stops_reader_before_closing():
    payload = {"id": "n1", "message": "You sold 1 x \"Lamp\" for 40 RON!", "notification_type": "order"}
    async_redis = FakeAsyncRedis(backlog=[
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": json.dumps(payload)},
    ])
    app = create_app("sqlite://", redis_client=FakeRedis(), async_redis_client=async_redis, seed=False)

    with TestClient(app) as client:
        body = client.post("/register", json={
            "name": "Listener",
            "email": "listener@example.com",
            "password": "secret",
            "role": "Untrusted",
            "country": "RO",
            "city": "București"
        }).json()
        user_id = body["user"]["id"]

        with client.websocket_connect(f"/ws/notifications?token={body['token']}") as websocket:
            assert json.loads(websocket.receive_text()) == payload

    assert async_redis.events == [
        ("subscribe", f"notifications:{user_id}"),
        "listen_closed",
        "unsubscribe",
        "aclose",
    ]
