from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import create_app
from models.models import Identity
from services.auth_service import issue_token


@pytest.fixture
def app(settings, hub):
    return create_app(settings=settings, hub=hub)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def _join(ws, room_id):
    ws.send_json({"event": "join-room", "data": {"roomId": room_id}})
    ack = ws.receive_json()
    assert ack["event"] == "room-joined"
    return ack["data"]


def test_end_to_end_message_between_two_users(client, hub):
    with client.websocket_connect("/ws?user_id=a&user_name=Ada") as alice, \
            client.websocket_connect("/ws?user_id=b&user_name=Bob") as bob:
        assert _join(alice, "course-1") == {"roomId": "course-1", "memberCount": 1}
        assert _join(bob, "course-1") == {"roomId": "course-1", "memberCount": 2}

        alice.send_json(
            {"event": "send-message", "data": {"roomId": "course-1", "content": "hello", "type": "text"}}
        )

        received = bob.receive_json()
        echo = alice.receive_json()

    assert received["event"] == "receive-message"
    assert received["data"]["content"] == "hello"
    assert received["data"]["sender"] == {"id": "a", "name": "Ada", "role": "student"}
    assert echo["data"]["id"] == received["data"]["id"]


def test_invalid_message_error_goes_to_sender_only(client):
    with client.websocket_connect("/ws?user_id=a") as alice, \
            client.websocket_connect("/ws?user_id=b") as bob:
        _join(alice, "course-1")
        _join(bob, "course-1")

        alice.send_json({"event": "send-message", "data": {"roomId": "", "content": "x"}})
        error = alice.receive_json()

        # A valid follow-up proves bob saw nothing before it
        alice.send_json({"event": "send-message", "data": {"roomId": "course-1", "content": "ok"}})
        first_for_bob = bob.receive_json()

    assert error == {"event": "error", "data": {"message": "Invalid message data: roomId is required"}}
    assert first_for_bob["data"]["content"] == "ok"


def test_invalid_json_is_reported(client):
    with client.websocket_connect("/ws?user_id=a") as alice:
        alice.send_text("not json")
        assert alice.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}


def test_binary_frame_is_rejected_and_connection_survives(client, hub):
    with client.websocket_connect("/ws?user_id=a") as alice:
        alice.send_bytes(b"\x00\x01")
        assert alice.receive_json() == {"event": "error", "data": {"message": "Invalid frame"}}

        assert _join(alice, "course-1") == {"roomId": "course-1", "memberCount": 1}
        assert len(hub.registry) == 1


def test_disconnect_cleans_up_membership(client, hub):
    with client.websocket_connect("/ws?user_id=a") as alice:
        with client.websocket_connect("/ws?user_id=b") as bob:
            _join(alice, "course-1")
            _join(bob, "course-1")
            assert len(hub.registry) == 2

        # Round trips on alice's socket until bob's disconnect has been processed
        for _ in range(50):
            alice.send_json({"event": "join-room", "data": {"roomId": "course-2"}})
            alice.receive_json()
            if len(hub.registry) == 1:
                break

        assert len(hub.registry) == 1
        assert len(hub.room_manager.members_of("course-1")) == 1

        alice.send_json({"event": "send-message", "data": {"roomId": "course-1", "content": "anyone?"}})
        assert alice.receive_json()["data"]["content"] == "anyone?"

    assert hub.fanout.stats.failed_deliveries == 0


def test_missing_identity_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws"):
            pass
    assert exc_info.value.code == 1008


def test_token_handshake(settings, hub):
    settings.AUTH_JWT_SECRET = "test-secret"
    token = issue_token(Identity(id="t1", name="Tess", role="instructor"), settings=settings)

    with TestClient(create_app(settings=settings, hub=hub)) as client:
        with client.websocket_connect(f"/ws?token={token}") as ws:
            _join(ws, "course-1")
            ws.send_json({"event": "send-message", "data": {"roomId": "course-1", "content": "hi"}})
            message = ws.receive_json()

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?user_id=t1"):
                pass

    assert message["data"]["sender"] == {"id": "t1", "name": "Tess", "role": "instructor"}
