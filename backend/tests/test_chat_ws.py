"""Tests for the realtime chat WebSocket.

Frames on one socket are handled in order, so after sending an event that has
no reply a test sends an unknown ``sync`` event and waits for its error. Once
that error arrives the earlier event has been fully handled, and the error
being the next frame proves nothing else was delivered in between.
"""
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect

from lingochat.chat.errors import PersistenceError
from lingochat.chat.rooms import room_name
from lingochat.store import ConnectionStatus

from conftest import TEST_SECRET, make_token


def connect(client, user_id):
    return client.websocket_connect(f"/ws/chat?token={make_token(user_id)}")


def sync(ws):
    ws.send_json({"event": "sync"})
    assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid event: sync"}}


def join(ws, connection_id):
    ws.send_json({"event": "join_room", "data": {"connectionId": connection_id}})
    sync(ws)


def send(ws, connection_id, content, **extra):
    ws.send_json({
        "event": "send_message",
        "data": {"connectionId": connection_id, "content": content, **extra},
    })


def receive_event(ws, name):
    frame = ws.receive_json()
    assert frame["event"] == name, frame
    return frame["data"]


@pytest.fixture
def pair(seed):
    """Users 1 and 2 with an accepted connection between them."""
    seed.user(1, "ana")
    seed.user(2, "ben")
    return seed.connection(1, 2)


class TestHandshake:
    def test_query_token_accepted(self, api_client, pair):
        with connect(api_client, 1):
            body = api_client.get("/presence/1").json()
            assert body["user_id"] == 1
            assert body["online"] is True
            assert body["online_since"].endswith("Z")

    def test_authorization_header_accepted(self, api_client, pair):
        headers = {"Authorization": f"Bearer {make_token(2)}"}
        with api_client.websocket_connect("/ws/chat", headers=headers):
            assert api_client.get("/presence/2").json()["online"] is True

    @pytest.mark.parametrize(
        "path",
        [
            "/ws/chat",
            "/ws/chat?token=not-a-jwt",
            f"/ws/chat?token={make_token(1, expires_in=-60)}",
            f"/ws/chat?token={make_token(1, secret=TEST_SECRET + '-other')}",
            f"/ws/chat?token={make_token('abc')}",
        ],
        ids=["missing", "garbage", "expired", "wrong-secret", "non-numeric-sub"],
    )
    def test_bad_credentials_close_with_policy_violation(self, api_client, path):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(path):
                pass
        assert exc_info.value.code == 1008
        assert api_client.get("/presence/1").json()["online"] is False

    def test_non_bearer_header_rejected(self, api_client):
        headers = {"Authorization": f"Token {make_token(1)}"}
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect("/ws/chat", headers=headers):
                pass
        assert exc_info.value.code == 1008


class TestPresence:
    def test_offline_after_disconnect(self, api_client, seed, pair):
        with connect(api_client, 1):
            assert seed.get_user(1).is_online is True
        assert api_client.get("/presence/1").json() == {
            "user_id": 1, "online": False, "online_since": None,
        }
        assert seed.get_user(1).is_online is False

    def test_online_until_last_device_closes(self, api_client, pair):
        with connect(api_client, 1):
            with connect(api_client, 1):
                pass
            assert api_client.get("/presence/1").json()["online"] is True
        assert api_client.get("/presence/1").json()["online"] is False

    def test_disconnect_leaves_rooms(self, api_client, gateway, pair):
        with connect(api_client, 1) as ws:
            join(ws, pair.id)
            assert gateway.rooms.get_room_size(room_name(pair.id)) == 1
        assert gateway.rooms.get_room_size(room_name(pair.id)) == 0


class TestJoinRoom:
    def test_party_of_accepted_connection_is_admitted(self, api_client, gateway, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)
            assert gateway.rooms.get_room_size(room_name(pair.id)) == 2

    @pytest.mark.parametrize("status", [ConnectionStatus.PENDING, ConnectionStatus.BLOCKED])
    def test_not_accepted_connection_denied(self, api_client, gateway, seed, status):
        conn = seed.connection(1, 2, status)
        with connect(api_client, 1) as ws:
            ws.send_json({"event": "join_room", "data": {"connectionId": conn.id}})
            assert receive_event(ws, "error") == {"message": "Access denied to this chat"}
            assert gateway.rooms.get_room_size(room_name(conn.id)) == 0

    def test_outsider_denied(self, api_client, gateway, pair):
        with connect(api_client, 3) as ws:
            ws.send_json({"event": "join_room", "data": {"connectionId": pair.id}})
            assert receive_event(ws, "error") == {"message": "Access denied to this chat"}
            assert gateway.rooms.get_room_size(room_name(pair.id)) == 0

    def test_missing_connection_denied(self, api_client):
        with connect(api_client, 1) as ws:
            ws.send_json({"event": "join_room", "data": {"connectionId": 999}})
            assert receive_event(ws, "error") == {"message": "Access denied to this chat"}

    def test_leave_room_stops_delivery(self, api_client, gateway, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)
            ws_b.send_json({"event": "leave_room", "data": {"connectionId": pair.id}})
            sync(ws_b)

            send(ws_a, pair.id, "still there?")
            receive_event(ws_a, "new_message")
            sync(ws_b)
            assert gateway.rooms.get_room_size(room_name(pair.id)) == 1


class TestSendMessage:
    def test_message_reaches_both_parties(self, api_client, seed, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)

            send(ws_a, pair.id, "hola")
            echoed = receive_event(ws_a, "new_message")
            delivered = receive_event(ws_b, "new_message")

        assert echoed == delivered
        assert delivered["content"] == "hola"
        assert delivered["sender_id"] == 1
        assert delivered["connection_id"] == pair.id
        assert delivered["type"] == "text"
        assert delivered["is_read"] is False
        assert delivered["read_at"] is None
        assert delivered["created_at"].endswith("Z")

        stored = seed.get_message(delivered["id"])
        assert stored.content == "hola"
        assert stored.sender_id == 1

    def test_image_message(self, api_client, pair):
        with connect(api_client, 2) as ws:
            join(ws, pair.id)
            send(ws, pair.id, "https://cdn.example/p.png", type="image")
            assert receive_event(ws, "new_message")["type"] == "image"

    def test_null_type_sends_text(self, api_client, pair):
        with connect(api_client, 1) as ws:
            join(ws, pair.id)
            send(ws, pair.id, "hola", type=None)
            assert receive_event(ws, "new_message")["type"] == "text"

    def test_ids_increase_in_send_order(self, api_client, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)
            for text in ("uno", "dos", "tres"):
                send(ws_a, pair.id, text)

            received = [receive_event(ws_b, "new_message") for _ in range(3)]

        assert [m["content"] for m in received] == ["uno", "dos", "tres"]
        ids = [m["id"] for m in received]
        assert ids[0] < ids[1] < ids[2]

    def test_send_without_join_is_persisted_but_not_echoed(self, api_client, seed, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_b, pair.id)

            send(ws_a, pair.id, "sin unirme")
            assert receive_event(ws_b, "new_message")["content"] == "sin unirme"
            sync(ws_a)

        assert [m.content for m in seed.messages(pair.id)] == ["sin unirme"]

    def test_blocking_mid_conversation_denies_next_send(self, api_client, seed, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)
            seed.set_status(pair.id, ConnectionStatus.BLOCKED)

            send(ws_a, pair.id, "hello?")
            assert receive_event(ws_a, "error") == {"message": "Access denied"}
            sync(ws_b)

        assert seed.messages(pair.id) == []

    def test_outsider_cannot_send(self, api_client, seed, pair):
        with connect(api_client, 3) as ws:
            send(ws, pair.id, "spam")
            assert receive_event(ws, "error") == {"message": "Access denied"}
        assert seed.messages(pair.id) == []

    @pytest.mark.parametrize(
        "content,expected",
        [
            ("", "Message content is required"),
            ("   ", "Message content is required"),
            ("x" * 2001, "Message exceeds 2000 characters"),
        ],
        ids=["empty", "blank", "oversized"],
    )
    def test_content_validation(self, api_client, seed, pair, content, expected):
        with connect(api_client, 1) as ws:
            join(ws, pair.id)
            send(ws, pair.id, content)
            assert receive_event(ws, "error") == {"message": expected}
        assert seed.messages(pair.id) == []

    def test_max_length_message_accepted(self, api_client, pair):
        with connect(api_client, 1) as ws:
            join(ws, pair.id)
            send(ws, pair.id, "x" * 2000)
            assert len(receive_event(ws, "new_message")["content"]) == 2000


class TestTyping:
    def test_typing_goes_to_others_only(self, api_client, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)

            ws_a.send_json({"event": "typing", "data": {"connectionId": pair.id, "isTyping": True}})
            assert receive_event(ws_b, "user_typing") == {"userId": 1, "isTyping": True}
            sync(ws_a)

    def test_typing_from_non_member_is_ignored(self, api_client, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_b, pair.id)

            ws_a.send_json({"event": "typing", "data": {"connectionId": pair.id, "isTyping": True}})
            sync(ws_a)
            sync(ws_b)

    def test_same_user_other_device_sees_typing(self, api_client, pair):
        with connect(api_client, 1) as phone, connect(api_client, 1) as laptop:
            join(phone, pair.id)
            join(laptop, pair.id)

            phone.send_json({"event": "typing", "data": {"connectionId": pair.id, "isTyping": False}})
            assert receive_event(laptop, "user_typing") == {"userId": 1, "isTyping": False}
            sync(phone)


class TestMarkRead:
    def test_receipt_goes_to_partner_and_own_messages_untouched(self, api_client, seed, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)

            send(ws_a, pair.id, "one")
            send(ws_a, pair.id, "two")
            send(ws_b, pair.id, "mine")
            # Frames from the two sockets may interleave in either order
            by_content = {m["content"]: m for m in (receive_event(ws_b, "new_message") for _ in range(3))}
            for _ in range(3):
                receive_event(ws_a, "new_message")
            first, second, own = by_content["one"], by_content["two"], by_content["mine"]

            ws_b.send_json({
                "event": "mark_read",
                "data": {"connectionId": pair.id, "messageIds": [first["id"], own["id"]]},
            })
            receipt = receive_event(ws_a, "messages_read")
            sync(ws_b)

        assert receipt["connectionId"] == pair.id
        assert receipt["readBy"] == 2
        assert receipt["messageIds"] == [first["id"]]
        assert receipt["readAt"].endswith("Z")

        assert seed.get_message(first["id"]).is_read is True
        assert seed.get_message(second["id"]).is_read is False
        assert seed.get_message(own["id"]).is_read is False

    def test_mark_all_unread(self, api_client, seed, pair):
        seed.message(pair.id, 1, "one")
        seed.message(pair.id, 1, "two")
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)

            ws_b.send_json({"event": "mark_read", "data": {"connectionId": pair.id}})
            assert len(receive_event(ws_a, "messages_read")["messageIds"]) == 2

        assert all(m.is_read for m in seed.messages(pair.id))

    def test_nothing_to_mark_sends_no_receipt(self, api_client, pair):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)

            ws_b.send_json({"event": "mark_read", "data": {"connectionId": pair.id}})
            sync(ws_b)
            sync(ws_a)

    def test_receipt_skips_readers_other_devices(self, api_client, seed, pair):
        seed.message(pair.id, 1, "hi")
        with connect(api_client, 1) as ws_a, \
             connect(api_client, 2) as phone, \
             connect(api_client, 2) as laptop:
            for ws in (ws_a, phone, laptop):
                join(ws, pair.id)

            phone.send_json({"event": "mark_read", "data": {"connectionId": pair.id}})
            receive_event(ws_a, "messages_read")
            sync(phone)
            sync(laptop)

    def test_blocked_connection_denied(self, api_client, seed, pair):
        seed.message(pair.id, 1, "hi")
        seed.set_status(pair.id, ConnectionStatus.BLOCKED)
        with connect(api_client, 2) as ws:
            ws.send_json({"event": "mark_read", "data": {"connectionId": pair.id}})
            assert receive_event(ws, "error") == {"message": "Access denied"}
        assert seed.messages(pair.id)[0].is_read is False


class TestInvalidFrames:
    def test_non_json_text(self, api_client):
        with connect(api_client, 1) as ws:
            ws.send_text("{not json")
            assert receive_event(ws, "error") == {"message": "Invalid frame: not JSON"}

    def test_unknown_event(self, api_client):
        with connect(api_client, 1) as ws:
            ws.send_json({"event": "dance", "data": {}})
            assert receive_event(ws, "error") == {"message": "Invalid event: dance"}

    def test_malformed_payload(self, api_client):
        with connect(api_client, 1) as ws:
            ws.send_json({"event": "send_message", "data": {"content": "no room"}})
            assert receive_event(ws, "error") == {"message": "Invalid event: send_message"}

    def test_socket_survives_bad_frames(self, api_client, pair):
        with connect(api_client, 1) as ws:
            ws.send_text("[]")
            receive_event(ws, "error")
            join(ws, pair.id)
            send(ws, pair.id, "still works")
            assert receive_event(ws, "new_message")["content"] == "still works"

    def test_binary_json_frame_is_handled(self, api_client, gateway, pair):
        with connect(api_client, 1) as ws:
            ws.send_bytes(b'{"event": "join_room", "data": {"connectionId": %d}}' % pair.id)
            sync(ws)
            assert gateway.rooms.get_room_size(room_name(pair.id)) == 1

    def test_binary_garbage_keeps_socket_open(self, api_client):
        with connect(api_client, 1) as ws:
            ws.send_bytes(b"\xff\xfe\x00")
            assert receive_event(ws, "error") == {"message": "Invalid frame: not JSON"}
            sync(ws)
            assert api_client.get("/presence/1").json()["online"] is True


class TestStoreFailures:
    def test_failed_save_reported_to_sender_only(self, api_client, gateway, seed, pair, monkeypatch):
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)
            monkeypatch.setattr(
                gateway.store,
                "create_message",
                AsyncMock(side_effect=PersistenceError("disk full")),
            )

            send(ws_a, pair.id, "lost")
            assert receive_event(ws_a, "error") == {"message": "Failed to send message"}
            sync(ws_b)

            monkeypatch.undo()
            send(ws_a, pair.id, "retry")
            assert receive_event(ws_a, "new_message")["content"] == "retry"
            assert receive_event(ws_b, "new_message")["content"] == "retry"

        assert [m.content for m in seed.messages(pair.id)] == ["retry"]

    def test_unexpected_store_error_reported_as_failed_send(self, api_client, gateway, pair, monkeypatch):
        monkeypatch.setattr(
            gateway.store, "create_message", AsyncMock(side_effect=RuntimeError("boom"))
        )
        with connect(api_client, 1) as ws:
            join(ws, pair.id)
            send(ws, pair.id, "hola")
            assert receive_event(ws, "error") == {"message": "Failed to send message"}
            sync(ws)

    def test_failed_mark_read_reported_to_reader_only(self, api_client, gateway, seed, pair, monkeypatch):
        seed.message(pair.id, 1, "hi")
        with connect(api_client, 1) as ws_a, connect(api_client, 2) as ws_b:
            join(ws_a, pair.id)
            join(ws_b, pair.id)
            monkeypatch.setattr(
                gateway.store,
                "mark_messages_read",
                AsyncMock(side_effect=PersistenceError("disk full")),
            )

            ws_b.send_json({"event": "mark_read", "data": {"connectionId": pair.id}})
            assert receive_event(ws_b, "error") == {"message": "Failed to mark messages as read"}
            sync(ws_a)
            sync(ws_b)

        assert seed.messages(pair.id)[0].is_read is False
