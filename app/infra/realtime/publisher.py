from enum import Enum
from typing import Any, Protocol

from app.infra.realtime.events import ChangeEvent


class RealtimePublisher(Protocol):
    async def broadcast(
        self,
        event: str | Enum,
        payload: Any,
        topic: str | None = None,
        acting_user_id: str | None = None,
    ) -> int: ...

    async def emit_to_user(
        self, user_id: str, event: str | Enum, payload: Any
    ) -> int: ...

    async def publish_change(self, change: ChangeEvent) -> int: ...


class NoopRealtimePublisher:
    async def broadcast(
        self,
        event: str | Enum,
        payload: Any,
        topic: str | None = None,
        acting_user_id: str | None = None,
    ) -> int:
        _ = (event, payload, topic, acting_user_id)
        return 0

    async def emit_to_user(self, user_id: str, event: str | Enum, payload: Any) -> int:
        _ = (user_id, event, payload)
        return 0

    async def publish_change(self, change: ChangeEvent) -> int:
        _ = change
        return 0
