from typing import Any

import pytest
from structlog.testing import capture_logs

from app.infra.realtime import Connection, InMemoryRealtimeHub
from app.infra.realtime.events import BoardEvent, ChangeEvent


class FakeWebSocket:
    def __init__(self, fail_on_send: bool = False) -> None:
        self.accepted = False
        self.fail_on_send = fail_on_send
        self.sent: list[dict[str, Any]] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail_on_send:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)


def drain(connection: Connection) -> list[dict[str, Any]]:
    envelopes = []
    while not connection.outbox.empty():
        envelope = connection.outbox.get_nowait()
        if envelope is not None:
            envelopes.append(envelope)
    return envelopes


def events(connection: Connection) -> list[str]:
    return [envelope["event"] for envelope in drain(connection)]


async def connect(
    hub: InMemoryRealtimeHub,
    topic: str | None = None,
    user_id: str | None = None,
) -> Connection:
    connection = await hub.connect(FakeWebSocket())
    if topic is not None:
        await hub.subscribe(connection, topic)
    if user_id is not None:
        await hub.bind_user(connection, user_id)
    return connection


@pytest.mark.asyncio
async def test_connect_accepts_transport_and_registers() -> None:
    hub = InMemoryRealtimeHub()
    websocket = FakeWebSocket()

    connection = await hub.connect(websocket)

    assert websocket.accepted
    assert connection.websocket is websocket
    assert hub.connection_count() == 1


@pytest.mark.asyncio
async def test_subscribe_leaves_previous_topic() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")

    await hub.subscribe(connection, "board-2")

    assert connection.topic == "board-2"
    assert hub.subscriber_count("board-1") == 0
    assert hub.subscriber_count("board-2") == 1


@pytest.mark.asyncio
async def test_subscribe_twice_keeps_single_membership() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")

    await hub.subscribe(connection, "board-1")

    assert connection.topic == "board-1"
    assert hub.subscriber_count("board-1") == 1


@pytest.mark.asyncio
async def test_bind_user_does_not_change_topic() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")

    await hub.bind_user(connection, "user-a")
    await hub.unbind_user(connection)

    assert connection.user_id is None
    assert connection.topic == "board-1"


@pytest.mark.asyncio
async def test_emit_to_topic_without_subscribers_is_noop() -> None:
    hub = InMemoryRealtimeHub()
    outsider = await connect(hub, topic="board-2")

    delivered = await hub.emit_to_topic("board-1", BoardEvent.TASK_CHANGED, {})

    assert delivered == 0
    assert drain(outsider) == []


@pytest.mark.asyncio
async def test_broadcast_with_topic_excludes_acting_connection() -> None:
    hub = InMemoryRealtimeHub()
    actor = await connect(hub, topic="board-1", user_id="user-a")
    first = await connect(hub, topic="board-1")
    second = await connect(hub, topic="board-1", user_id="user-b")
    elsewhere = await connect(hub, topic="board-2")

    delivered = await hub.broadcast(
        BoardEvent.TASK_CHANGED, {"_id": "t1"}, topic="board-1", acting_user_id="user-a"
    )

    assert delivered == 2
    assert events(actor) == []
    assert events(first) == ["task-changed"]
    assert events(second) == ["task-changed"]
    assert events(elsewhere) == []


@pytest.mark.asyncio
async def test_broadcast_without_topic_excludes_acting_connection_everywhere() -> None:
    hub = InMemoryRealtimeHub()
    actor = await connect(hub, topic="board-1", user_id="user-a")
    same_topic = await connect(hub, topic="board-1")
    elsewhere = await connect(hub, topic="board-2")
    no_topic = await connect(hub)

    await hub.broadcast(BoardEvent.BOARD_ADDED, {"_id": "b9"}, acting_user_id="user-a")

    assert events(actor) == []
    assert events(same_topic) == ["board-added"]
    assert events(elsewhere) == ["board-added"]
    assert events(no_topic) == ["board-added"]


@pytest.mark.asyncio
async def test_broadcast_with_unresolved_actor_reaches_whole_topic() -> None:
    hub = InMemoryRealtimeHub()
    first = await connect(hub, topic="board-1", user_id="user-a")
    second = await connect(hub, topic="board-1")
    elsewhere = await connect(hub, topic="board-2")

    delivered = await hub.broadcast(
        BoardEvent.TASK_CHANGED, {}, topic="board-1", acting_user_id="user-offline"
    )

    assert delivered == 2
    assert events(first) == ["task-changed"]
    assert events(second) == ["task-changed"]
    assert events(elsewhere) == []


@pytest.mark.asyncio
async def test_broadcast_with_nothing_resolved_reaches_every_connection() -> None:
    hub = InMemoryRealtimeHub()
    connections = [
        await connect(hub, topic="board-1"),
        await connect(hub, topic="board-2"),
        await connect(hub),
    ]

    delivered = await hub.broadcast(BoardEvent.BOARD_REMOVED, "b1")

    assert delivered == 3
    for connection in connections:
        assert events(connection) == ["board-removed"]


@pytest.mark.asyncio
async def test_broadcast_does_not_exclude_when_actor_has_several_connections() -> None:
    hub = InMemoryRealtimeHub()
    tab_one = await connect(hub, topic="board-1", user_id="user-a")
    tab_two = await connect(hub, topic="board-1", user_id="user-a")

    delivered = await hub.broadcast(
        BoardEvent.GROUP_CHANGED, {}, topic="board-1", acting_user_id="user-a"
    )

    assert delivered == 2
    assert events(tab_one) == ["group-changed"]
    assert events(tab_two) == ["group-changed"]


@pytest.mark.asyncio
async def test_emit_to_offline_user_delivers_nothing() -> None:
    hub = InMemoryRealtimeHub()
    other = await connect(hub, topic="board-1", user_id="user-b")

    delivered = await hub.emit_to_user("user-a", BoardEvent.CHAT_MESSAGE_ADDED, "hi")

    assert delivered == 0
    assert drain(other) == []


@pytest.mark.asyncio
async def test_emit_to_user_reaches_every_bound_connection() -> None:
    hub = InMemoryRealtimeHub()
    tab_one = await connect(hub, user_id="user-a")
    tab_two = await connect(hub, user_id="user-a")
    other = await connect(hub, user_id="user-b")

    delivered = await hub.emit_to_user("user-a", BoardEvent.CHAT_MESSAGE_ADDED, "hi")

    assert delivered == 2
    assert drain(tab_one)[0]["payload"] == "hi"
    assert drain(tab_two)[0]["payload"] == "hi"
    assert drain(other) == []


@pytest.mark.asyncio
async def test_emit_to_label_reaches_watchers_only() -> None:
    hub = InMemoryRealtimeHub()
    watcher = await connect(hub)
    bystander = await connect(hub)
    await hub.watch_user(watcher, "user-a")

    delivered = await hub.emit_to("user-updated", {"_id": "user-a"}, label="user-a")

    assert delivered == 1
    assert events(watcher) == ["user-updated"]
    assert events(bystander) == []


@pytest.mark.asyncio
async def test_disconnect_removes_membership_and_stops_delivery() -> None:
    hub = InMemoryRealtimeHub()
    leaving = await connect(hub, topic="board-1", user_id="user-a")
    staying = await connect(hub, topic="board-1")

    await hub.disconnect(leaving)
    delivered = await hub.emit_to_topic("board-1", BoardEvent.TASK_ADDED, {})

    assert delivered == 1
    assert leaving.closed
    assert leaving.topic is None
    assert leaving.user_id is None
    assert hub.connection_count() == 1
    assert hub.subscriber_count("board-1") == 1
    assert drain(leaving) == []
    assert events(staying) == ["task-added"]
    assert await hub.emit_to_user("user-a", BoardEvent.TASK_ADDED, {}) == 0


@pytest.mark.asyncio
async def test_events_keep_enqueue_order_per_connection() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")

    for index in range(5):
        await hub.emit_to_topic("board-1", BoardEvent.TASK_CHANGED, {"seq": index})

    assert [envelope["payload"]["seq"] for envelope in drain(connection)] == [
        0,
        1,
        2,
        3,
        4,
    ]


@pytest.mark.asyncio
async def test_envelope_carries_topic_and_timestamp() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")

    await hub.emit_to_topic("board-1", BoardEvent.COMMENT_UPDATED, {"_id": "c1"})

    envelope = drain(connection)[0]
    assert envelope["event"] == "comment-update"
    assert envelope["topic"] == "board-1"
    assert envelope["payload"] == {"_id": "c1"}
    assert envelope["sent_at"]


@pytest.mark.asyncio
async def test_publish_change_applies_broadcast_policy() -> None:
    hub = InMemoryRealtimeHub()
    actor = await connect(hub, topic="board-1", user_id="user-a")
    watcher = await connect(hub, topic="board-1")

    await hub.publish_change(
        ChangeEvent(
            kind=BoardEvent.TASK_REMOVED,
            payload={"_id": "t1"},
            acting_user_id="user-a",
            topic="board-1",
        )
    )

    assert events(actor) == []
    assert events(watcher) == ["task-removed"]


@pytest.mark.asyncio
async def test_run_sender_writes_queued_events_in_order() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")
    await hub.emit_to_topic("board-1", BoardEvent.TASK_ADDED, {"seq": 1})
    await hub.emit_to_topic("board-1", BoardEvent.TASK_CHANGED, {"seq": 2})
    await hub.disconnect(connection)

    await hub.run_sender(connection)

    assert [frame["event"] for frame in connection.websocket.sent] == [
        "task-added",
        "task-changed",
    ]


@pytest.mark.asyncio
async def test_run_sender_drops_connection_when_send_fails() -> None:
    hub = InMemoryRealtimeHub()
    connection = await hub.connect(FakeWebSocket(fail_on_send=True))
    await hub.subscribe(connection, "board-1")
    await hub.emit_to_topic("board-1", BoardEvent.TASK_ADDED, {})

    await hub.run_sender(connection)

    assert connection.closed
    assert hub.connection_count() == 0
    assert hub.subscriber_count("board-1") == 0


@pytest.mark.asyncio
async def test_unsubscribe_leaves_topic() -> None:
    hub = InMemoryRealtimeHub()
    connection = await connect(hub, topic="board-1")

    await hub.unsubscribe(connection)
    delivered = await hub.emit_to_topic("board-1", BoardEvent.TASK_ADDED, {})

    assert delivered == 0
    assert connection.topic is None
    assert drain(connection) == []


@pytest.mark.asyncio
async def test_broadcast_and_user_emit_log_the_event_name() -> None:
    hub = InMemoryRealtimeHub()
    await connect(hub, topic="board-1", user_id="user-a")
    await connect(hub, topic="board-1")

    with capture_logs() as logs:
        await hub.broadcast(
            BoardEvent.TASK_CHANGED, {}, topic="board-1", acting_user_id="user-a"
        )
        await hub.broadcast(BoardEvent.BOARD_REMOVED, "b1")
        await hub.emit_to_user("user-offline", BoardEvent.CHAT_MESSAGE_ADDED, "hi")

    assert [(entry["event"], entry["event_name"]) for entry in logs] == [
        ("socket.broadcast_topic_excluding", "task-changed"),
        ("socket.broadcast_all", "board-removed"),
        ("socket.user_offline", "chat-add-msg"),
    ]
