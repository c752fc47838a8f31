"""Realtime event transport (WebSocket) adapters."""

from app.infra.realtime.hub import Connection, InMemoryRealtimeHub

__all__ = ["Connection", "InMemoryRealtimeHub"]
