import asyncio
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from app.infra.realtime.channels import watch_label
from app.infra.realtime.events import ChangeEvent

logger = structlog.get_logger(__name__)


def _event_name(event: str | Enum) -> str:
    return event.value if isinstance(event, Enum) else str(event)


@dataclass(eq=False, slots=True)
class Connection:
    """A live transport socket and its mutable routing state."""

    websocket: WebSocket
    id: str = field(default_factory=lambda: uuid4().hex)
    user_id: str | None = None
    topic: str | None = None
    watching: set[str] = field(default_factory=set)
    outbox: asyncio.Queue[dict[str, Any] | None] = field(
        default_factory=asyncio.Queue
    )
    closed: bool = False


class InMemoryRealtimeHub:
    """In-process connection registry and topic fan-out.

    A connection belongs to at most one topic. Events are queued on each
    recipient's outbox and written by that connection's sender, so delivery
    order is preserved per connection. Nothing here raises on a missing
    receiver: emitting to nobody is a no-op.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._topic_members: dict[str, set[Connection]] = defaultdict(set)
        self._label_watchers: dict[str, set[Connection]] = defaultdict(set)

    async def connect(self, websocket: WebSocket) -> Connection:
        await websocket.accept()
        connection = Connection(websocket=websocket)
        self._connections[connection.id] = connection
        logger.info("socket.connected", socket_id=connection.id)
        return connection

    async def disconnect(self, connection: Connection) -> None:
        if self._connections.pop(connection.id, None) is None:
            return

        self._leave_topic(connection)
        for label in connection.watching:
            watchers = self._label_watchers.get(label)
            if watchers is None:
                continue
            watchers.discard(connection)
            if not watchers:
                self._label_watchers.pop(label, None)
        connection.watching.clear()
        connection.user_id = None
        connection.closed = True
        connection.outbox.put_nowait(None)
        logger.info("socket.disconnected", socket_id=connection.id)

    def connection_count(self) -> int:
        return len(self._connections)

    def subscriber_count(self, topic: str) -> int:
        members = self._topic_members.get(topic)
        if members is None:
            return 0
        return len(members)

    async def subscribe(self, connection: Connection, topic: str) -> None:
        if connection.closed or connection.topic == topic:
            return
        if connection.topic is not None:
            logger.info(
                "socket.topic_left", socket_id=connection.id, topic=connection.topic
            )
            self._leave_topic(connection)
        self._topic_members[topic].add(connection)
        connection.topic = topic
        logger.info("socket.topic_joined", socket_id=connection.id, topic=topic)

    async def unsubscribe(self, connection: Connection) -> None:
        self._leave_topic(connection)

    async def bind_user(self, connection: Connection, user_id: str) -> None:
        if connection.closed:
            return
        connection.user_id = str(user_id)
        logger.info("socket.user_bound", socket_id=connection.id, user_id=user_id)

    async def unbind_user(self, connection: Connection) -> None:
        logger.info(
            "socket.user_unbound", socket_id=connection.id, user_id=connection.user_id
        )
        connection.user_id = None

    async def watch_user(self, connection: Connection, user_id: str) -> None:
        if connection.closed:
            return
        label = watch_label(str(user_id))
        self._label_watchers[label].add(connection)
        connection.watching.add(label)
        logger.info("socket.user_watch", socket_id=connection.id, user_id=user_id)

    async def emit_to_topic(
        self, topic: str, event: str | Enum, payload: Any
    ) -> int:
        members = self._topic_members.get(topic, set())
        return self._deliver(members, event, payload, topic=topic)

    async def emit_to_connection(
        self, connection: Connection, event: str | Enum, payload: Any
    ) -> int:
        return self._deliver([connection], event, payload, topic=connection.topic)

    async def emit_to_user(self, user_id: str, event: str | Enum, payload: Any) -> int:
        user_id = str(user_id)
        connections = self._user_connections(user_id)
        if not connections:
            logger.info(
                "socket.user_offline",
                user_id=user_id,
                event_name=_event_name(event),
            )
            return 0
        logger.info(
            "socket.emit_to_user",
            user_id=user_id,
            event_name=_event_name(event),
            socket_ids=[connection.id for connection in connections],
        )
        return self._deliver(connections, event, payload)

    async def emit_to(
        self, event: str | Enum, payload: Any, label: str | None = None
    ) -> int:
        if label:
            watchers = self._label_watchers.get(watch_label(str(label)), set())
            return self._deliver(watchers, event, payload)
        return self._deliver(self._connections.values(), event, payload)

    async def broadcast(
        self,
        event: str | Enum,
        payload: Any,
        topic: str | None = None,
        acting_user_id: str | None = None,
    ) -> int:
        """Notify everyone interested except the acting user's own socket."""
        name = _event_name(event)
        excluded = (
            self._resolve_acting_connection(str(acting_user_id))
            if acting_user_id is not None
            else None
        )

        if topic and excluded is not None:
            logger.info(
                "socket.broadcast_topic_excluding",
                event_name=name,
                topic=topic,
                user_id=acting_user_id,
            )
            recipients = [
                connection
                for connection in self._topic_members.get(topic, set())
                if connection is not excluded
            ]
            return self._deliver(recipients, event, payload, topic=topic)

        if excluded is not None:
            logger.info(
                "socket.broadcast_all_excluding", event_name=name, user_id=acting_user_id
            )
            recipients = [
                connection
                for connection in self._connections.values()
                if connection is not excluded
            ]
            return self._deliver(recipients, event, payload)

        if topic:
            logger.info("socket.broadcast_topic", event_name=name, topic=topic)
            return await self.emit_to_topic(topic, event, payload)

        logger.info("socket.broadcast_all", event_name=name)
        return self._deliver(self._connections.values(), event, payload)

    async def publish_change(self, change: ChangeEvent) -> int:
        return await self.broadcast(
            change.kind,
            change.payload,
            topic=change.topic,
            acting_user_id=change.acting_user_id,
        )

    async def run_sender(self, connection: Connection) -> None:
        """Write queued events to the transport until the connection closes."""
        while True:
            envelope = await connection.outbox.get()
            if envelope is None:
                return
            try:
                await connection.websocket.send_json(envelope)
            except (RuntimeError, WebSocketDisconnect) as exc:
                logger.warning(
                    "socket.send_failed", socket_id=connection.id, error=str(exc)
                )
                await self.disconnect(connection)
                return

    def _user_connections(self, user_id: str) -> list[Connection]:
        return [
            connection
            for connection in self._connections.values()
            if connection.user_id == user_id
        ]

    def _resolve_acting_connection(self, user_id: str) -> Connection | None:
        connections = self._user_connections(user_id)
        if len(connections) != 1:
            return None
        return connections[0]

    def _leave_topic(self, connection: Connection) -> None:
        topic = connection.topic
        if topic is None:
            return
        members = self._topic_members.get(topic)
        if members is not None:
            members.discard(connection)
            if not members:
                self._topic_members.pop(topic, None)
        connection.topic = None

    def _deliver(
        self,
        recipients: Iterable[Connection],
        event: str | Enum,
        payload: Any,
        topic: str | None = None,
    ) -> int:
        envelope = {
            "event": _event_name(event),
            "topic": topic,
            "payload": payload,
            "sent_at": datetime.now(UTC).isoformat(),
        }
        delivered = 0
        for connection in list(recipients):
            if connection.closed:
                continue
            connection.outbox.put_nowait(envelope)
            delivered += 1
        return delivered
