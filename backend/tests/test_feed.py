from datetime import datetime, timezone
import pytest
from socketio.exceptions import ConnectionError as FeedConnectionError, TimeoutError as FeedTimeoutError
from friendss.errors import FeedInterrupted, StoreOperationFailed
from friendss.schemas.change import ChangeEvent, ChangeKind, EntityType
from friendss.schemas.participant import ParticipantResponse
from friendss.schemas.room import RoomResponse
from friendss.store.http import FeedSubscription
from friendss.websocket import handler

JOINED = datetime(2024, 12, 20, 18, 0, tzinfo=timezone.utc)


def participant(name="Ana", room_id="r1"):
    return ParticipantResponse(id=f"p-{name}", room_id=room_id, name=name, joined_at=JOINED)


@pytest.fixture
def server(monkeypatch):
    """Records what the Socket.IO server is asked to do."""
    calls = []

    async def enter_room(sid, room, namespace=None):
        calls.append(("enter", sid, room))

    async def leave_room(sid, room, namespace=None):
        calls.append(("leave", sid, room))

    async def emit(event, data=None, **kwargs):
        calls.append(("emit", event, data, kwargs.get("room")))

    monkeypatch.setattr(handler.sio, "enter_room", enter_room)
    monkeypatch.setattr(handler.sio, "leave_room", leave_room)
    monkeypatch.setattr(handler.sio, "emit", emit)
    monkeypatch.setattr(handler, "subscriptions", {})
    return calls


class FakeSocket:
    def __init__(self, ack=None, connect_error=None, call_error=None):
        self.connected = False
        self.ack = ack
        self.connect_error = connect_error
        self.call_error = call_error
        self.calls = []
        self.disconnects = 0

    async def connect(self, url, **kwargs):
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def call(self, event, data=None, **kwargs):
        self.calls.append((event, data))
        if self.call_error:
            raise self.call_error
        return self.ack

    async def disconnect(self):
        self.connected = False
        self.disconnects += 1


def feed(entity_type=None, **socket_options):
    subscription = FeedSubscription("http://friendss.test", "r1", entity_type)
    subscription.sio = FakeSocket(**socket_options)
    return subscription


async def test_subscribe_joins_the_room_channel(server):
    await handler.connect("sid-1", {})
    assert await handler.subscribe("sid-1", {"roomId": "r1"}) == {"ok": True}

    assert server == [("enter", "sid-1", "room:r1")]
    assert handler.subscriptions == {"sid-1": {"r1"}}
    assert handler.ws_handler.connection_count == 1


async def test_subscribe_and_unsubscribe_need_a_room_id(server):
    assert (await handler.subscribe("sid-1", {}))["ok"] is False
    assert (await handler.subscribe("sid-1", None))["ok"] is False
    assert (await handler.unsubscribe("sid-1", {"roomId": ""}))["ok"] is False
    assert server == []


async def test_unsubscribe_and_disconnect_forget_the_client(server):
    await handler.connect("sid-1", {})
    await handler.subscribe("sid-1", {"roomId": "r1"})

    assert await handler.unsubscribe("sid-1", {"roomId": "r1"}) == {"ok": True}
    assert server[-1] == ("leave", "sid-1", "room:r1")
    assert handler.subscriptions["sid-1"] == set()

    await handler.disconnect("sid-1")
    assert handler.ws_handler.connection_count == 0


async def test_changes_are_emitted_to_the_room_channel(server):
    room = RoomResponse(id="r1", host_token="t", created_at=JOINED, drawn=True)
    await handler.ws_handler.broadcast_changes(
        [ChangeEvent.for_room(ChangeKind.DELETE, room), ChangeEvent.for_participant(ChangeKind.DELETE, participant())]
    )

    assert [(c[1], c[3]) for c in server] == [("change", "room:r1"), ("change", "room:r1")]
    assert server[0][2]["entity_type"] == "room"
    assert server[1][2]["record"]["name"] == "Ana"


async def test_emitted_change_is_read_back_by_the_client(server):
    subscription = feed(EntityType.PARTICIPANT)
    ana = participant()
    await handler.broadcast_change(ChangeEvent.for_participant(ChangeKind.INSERT, ana))

    await subscription._on_change(server[0][2])
    event = await subscription.__anext__()
    assert event.kind == ChangeKind.INSERT
    assert event.participant() == ana


async def test_feed_filters_by_entity_type_and_drops_malformed_payloads():
    subscription = feed(EntityType.PARTICIPANT)
    room = RoomResponse(id="r1", host_token="t", created_at=JOINED)

    await subscription._on_change(ChangeEvent.for_room(ChangeKind.UPDATE, room).model_dump(mode="json"))
    await subscription._on_change({"kind": "shrug", "room_id": "r1"})
    await subscription._on_change(ChangeEvent.for_participant(ChangeKind.INSERT, participant("Bia", "r2")).model_dump(mode="json"))
    await subscription._on_change(ChangeEvent.for_participant(ChangeKind.INSERT, participant()).model_dump(mode="json"))

    assert (await subscription.__anext__()).participant().name == "Ana"
    assert subscription._queue.empty()


async def test_disconnect_surfaces_as_interruption():
    subscription = feed()
    await subscription._on_disconnect()
    with pytest.raises(FeedInterrupted):
        await subscription.__anext__()


async def test_disconnect_after_close_is_quiet():
    subscription = feed()
    await subscription.close()
    await subscription._on_disconnect()
    assert [event async for event in subscription] == []


async def test_open_subscribes_to_the_room():
    subscription = feed(ack={"ok": True})
    await subscription.open()

    assert subscription.sio.calls == [("subscribe", {"roomId": "r1"})]
    assert subscription.sio.connected
    assert not subscription.closed


async def test_refused_subscription_disconnects():
    subscription = feed(ack={"ok": False, "error": "roomId is required"})
    with pytest.raises(StoreOperationFailed):
        await subscription.open()

    assert subscription.sio.disconnects == 1
    assert subscription.closed


async def test_subscribe_timeout_does_not_leak_the_connection():
    subscription = feed(call_error=FeedTimeoutError())
    with pytest.raises(StoreOperationFailed):
        await subscription.open()

    assert subscription.sio.disconnects == 1
    assert not subscription.sio.connected
    assert subscription.closed


async def test_failed_connect_needs_no_disconnect():
    subscription = feed(connect_error=FeedConnectionError("refused"))
    with pytest.raises(StoreOperationFailed):
        await subscription.open()

    assert subscription.sio.disconnects == 0
    assert subscription.sio.calls == []
