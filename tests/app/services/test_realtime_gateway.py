"""Tests for RealtimeGateway event handling, driven with in-memory sockets."""

import asyncio
import json

import pytest

from app.adapters.base import BaseNotificationAdapter, NotificationResult
from app.core.connections import ConnectionHub
from app.core.presence import PresenceTracker
from app.models.message import Message
from app.schemas.auth import CurrentUser
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.realtime_gateway import RealtimeGateway


class FakeWebSocket:
    def __init__(self, closed=False):
        self.frames = []
        self.closed = closed

    async def send_json(self, data):
        if self.closed:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    def events(self):
        return [f["event"] for f in self.frames]


class RecordingAdapter(BaseNotificationAdapter):
    channel = "recording"

    def __init__(self, error=None):
        self.sent = []
        self.error = error

    def send_text(self, phone_number, text):
        self.sent.append((phone_number, text))
        if self.error is not None:
            raise self.error
        return NotificationResult(success=True)


@pytest.fixture
def buyer(setup_buyer):
    return CurrentUser(user_id=setup_buyer.id, role="buyer")


@pytest.fixture
def manufacturer(setup_manufacturer):
    return CurrentUser(user_id=setup_manufacturer.id, role="manufacturer")


@pytest.fixture
def build_gateway(session_scope):
    def _build(adapter=None, notify_offline_recipients=True):
        return RealtimeGateway(
            ConnectionHub(),
            PresenceTracker(),
            session_scope,
            NotificationDispatcher(adapter),
            notify_offline_recipients=notify_offline_recipients,
        )

    return _build


def test_presence_signal_on_first_and_later_connections(build_gateway, buyer):
    first, second = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        gateway = build_gateway()
        await gateway.connect(first, buyer)
        await gateway.connect(second, buyer)
        assert gateway.presence.connection_count(buyer.user_id) == 2
        await gateway.disconnect(second, buyer)
        assert gateway.presence.is_online(buyer.user_id)
        await gateway.disconnect(first, buyer)
        assert not gateway.presence.is_online(buyer.user_id)
        assert gateway.hub.connection_count(buyer.user_id) == 0

    asyncio.run(scenario())
    online = {"event": "presence", "data": {"userId": str(buyer.user_id), "online": True}}
    assert first.frames == [online]
    assert second.frames == [online]


def test_send_message_reaches_both_participants(
    db, build_gateway, setup_conversation, buyer, manufacturer
):
    buyer_ws, buyer_tab, maker_ws = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()

    async def scenario():
        gateway = build_gateway()
        await gateway.connect(buyer_ws, buyer)
        await gateway.connect(buyer_tab, buyer)
        await gateway.connect(maker_ws, manufacturer)
        raw = json.dumps(
            {
                "event": "send-message",
                "data": {
                    "conversationId": str(setup_conversation.id),
                    "body": "Hello <i>there</i>",
                    "clientTempId": "tmp-7",
                },
            }
        )
        await gateway.handle_frame(buyer, raw)

    asyncio.run(scenario())

    for ws in (buyer_ws, buyer_tab, maker_ws):
        assert ws.events()[-1] == "message:new"
    data = maker_ws.frames[-1]["data"]
    assert data["message"]["body"] == "Hello there"
    assert data["message"]["client_temp_id"] == "tmp-7"
    assert data["conversationSummary"]["last_message_text"] == "Hello there"
    assert db.query(Message).count() == 1


def test_send_message_from_non_participant_is_dropped(
    db, build_gateway, setup_conversation, setup_other_buyer, manufacturer
):
    intruder = CurrentUser(user_id=setup_other_buyer.id, role="buyer")
    maker_ws = FakeWebSocket()

    async def scenario():
        gateway = build_gateway()
        await gateway.connect(maker_ws, manufacturer)
        return await gateway.send_message(
            intruder, {"conversationId": str(setup_conversation.id), "body": "spam"}
        )

    assert asyncio.run(scenario()) is None
    assert maker_ws.events() == ["presence"]
    assert db.query(Message).count() == 0


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"event": "send-message", "data": {"body": "no conversation"}}),
        json.dumps({"event": "unknown", "data": {}}),
    ],
)
def test_malformed_frames_are_dropped(db, build_gateway, buyer, raw):
    asyncio.run(build_gateway().handle_frame(buyer, raw))
    assert db.query(Message).count() == 0


def test_empty_send_is_dropped(db, build_gateway, setup_conversation, buyer):
    result = asyncio.run(
        build_gateway().send_message(
            buyer,
            {"conversationId": str(setup_conversation.id), "body": "   ", "attachments": []},
        )
    )
    assert result is None
    assert db.query(Message).count() == 0


def test_attachment_only_message_gets_placeholder_summary(
    build_gateway, setup_conversation, buyer
):
    async def scenario():
        return await build_gateway().send_message(
            buyer,
            {
                "conversationId": str(setup_conversation.id),
                "attachments": [
                    {"url": "https://cdn.example.com/clip.mp4", "mimeType": "video/mp4"}
                ],
            },
        )

    outcome = asyncio.run(scenario())
    assert outcome.summary.last_message_text == "📎 Video"
    assert outcome.message.attachments[0].mime_type == "video/mp4"


def test_mark_read_broadcasts_receipt(
    build_gateway, setup_conversation, setup_buyer, make_message, buyer, manufacturer
):
    target = make_message(setup_conversation, "buyer", setup_buyer.id, "b", minutes_ago=1)
    make_message(setup_conversation, "buyer", setup_buyer.id, "a", minutes_ago=5)
    buyer_ws, maker_ws = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        gateway = build_gateway()
        await gateway.connect(buyer_ws, buyer)
        await gateway.connect(maker_ws, manufacturer)
        return await gateway.mark_read(
            manufacturer,
            {
                "conversationId": str(setup_conversation.id),
                "upToMessageId": str(target.id),
            },
        )

    outcome = asyncio.run(scenario())
    assert outcome.updated == 1
    for ws in (buyer_ws, maker_ws):
        frame = ws.frames[-1]
        assert frame["event"] == "message:read"
        assert frame["data"]["readerUserId"] == str(manufacturer.user_id)
        assert frame["data"]["upToMessageId"] == str(target.id)


def test_mark_read_with_foreign_message_is_dropped(
    build_gateway, setup_conversation, manufacturer, faker
):
    maker_ws = FakeWebSocket()

    async def scenario():
        gateway = build_gateway()
        await gateway.connect(maker_ws, manufacturer)
        return await gateway.mark_read(
            manufacturer,
            {
                "conversationId": str(setup_conversation.id),
                "upToMessageId": faker.uuid4(),
            },
        )

    assert asyncio.run(scenario()) is None
    assert maker_ws.events() == ["presence"]


def test_offline_recipient_gets_one_notice(
    build_gateway, setup_conversation, setup_buyer, setup_manufacturer, buyer
):
    adapter = RecordingAdapter()

    async def scenario():
        gateway = build_gateway(adapter)
        await gateway.send_message(
            buyer, {"conversationId": str(setup_conversation.id), "body": "Quote please"}
        )
        await gateway.dispatcher.drain()

    asyncio.run(scenario())
    assert len(adapter.sent) == 1
    phone, text = adapter.sent[0]
    assert phone == setup_manufacturer.phone_number
    assert "Quote please" in text
    assert setup_buyer.buyer_identifier in text


def test_online_recipient_gets_no_notice(
    build_gateway, setup_conversation, buyer, manufacturer
):
    adapter = RecordingAdapter()

    async def scenario():
        gateway = build_gateway(adapter)
        await gateway.connect(FakeWebSocket(), manufacturer)
        await gateway.send_message(
            buyer, {"conversationId": str(setup_conversation.id), "body": "Hi"}
        )
        await gateway.dispatcher.drain()

    asyncio.run(scenario())
    assert adapter.sent == []


def test_notices_can_be_switched_off(build_gateway, setup_conversation, buyer):
    adapter = RecordingAdapter()

    async def scenario():
        gateway = build_gateway(adapter, notify_offline_recipients=False)
        await gateway.send_message(
            buyer, {"conversationId": str(setup_conversation.id), "body": "Hi"}
        )
        await gateway.dispatcher.drain()

    asyncio.run(scenario())
    assert adapter.sent == []


def test_failing_notice_does_not_fail_send(db, build_gateway, setup_conversation, buyer):
    adapter = RecordingAdapter(error=RuntimeError("provider down"))

    async def scenario():
        gateway = build_gateway(adapter)
        outcome = await gateway.send_message(
            buyer, {"conversationId": str(setup_conversation.id), "body": "Hi"}
        )
        await gateway.dispatcher.drain()
        return outcome

    outcome = asyncio.run(scenario())
    assert outcome is not None
    assert len(adapter.sent) == 1
    assert db.query(Message).count() == 1


def test_closed_socket_is_dropped_from_group(
    build_gateway, setup_conversation, buyer, manufacturer
):
    live, dead = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        gateway = build_gateway()
        await gateway.connect(live, manufacturer)
        await gateway.connect(dead, manufacturer)
        dead.closed = True
        await gateway.send_message(
            buyer, {"conversationId": str(setup_conversation.id), "body": "Hi"}
        )
        return gateway.hub.connection_count(manufacturer.user_id)

    assert asyncio.run(scenario()) == 1
    assert live.events()[-1] == "message:new"
