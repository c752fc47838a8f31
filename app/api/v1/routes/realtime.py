import asyncio
import json
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from app.core.config import get_settings
from app.core.context import Identity
from app.infra.realtime import Connection, InMemoryRealtimeHub
from app.infra.realtime.channels import board_topic
from app.infra.realtime.events import RELAYED_ACTIONS, SocketAction, SystemEvent
from app.services.auth_service import AuthService

router = APIRouter()
settings = get_settings()
logger = structlog.get_logger(__name__)


@router.websocket("/socket")
async def board_socket(websocket: WebSocket) -> None:
    hub: InMemoryRealtimeHub | None = getattr(websocket.app.state, "realtime_hub", None)
    if hub is None:
        await websocket.close(code=1011, reason="Realtime hub not initialized")
        return

    cookie_identity = AuthService().validate_token(
        websocket.cookies.get(settings.login_token_cookie)
    )

    connection = await hub.connect(websocket)
    sender = asyncio.create_task(hub.run_sender(connection))
    await hub.emit_to_connection(
        connection, SystemEvent.CONNECTED, {"socket_id": connection.id}
    )

    try:
        while True:
            raw_message = await websocket.receive_text()
            await handle_frame(hub, connection, raw_message, cookie_identity)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(connection)
        await sender


async def handle_frame(
    hub: InMemoryRealtimeHub,
    connection: Connection,
    raw_message: str,
    cookie_identity: Identity | None = None,
) -> None:
    """Apply one client frame of the form ``{"event": ..., "data": ...}``."""
    try:
        frame = json.loads(raw_message)
    except json.JSONDecodeError:
        await _reply_error(hub, connection, "Expected JSON payload")
        return
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        await _reply_error(hub, connection, "Expected an event name")
        return

    try:
        action = SocketAction(frame["event"])
    except ValueError:
        await _reply_error(hub, connection, "Unsupported action")
        return
    data: Any = frame.get("data")

    if action is SocketAction.PING:
        await hub.emit_to_connection(connection, SystemEvent.PONG, {})
        return

    if action is SocketAction.SET_TOPIC:
        if data in (None, ""):
            await _reply_error(hub, connection, "Topic is required")
            return
        await hub.subscribe(connection, board_topic(str(data)))
        return

    if action is SocketAction.SET_USER_SOCKET:
        if data in (None, ""):
            await _reply_error(hub, connection, "User id is required")
            return
        user_id = str(data)
        if cookie_identity is not None and cookie_identity.id != user_id:
            logger.warning(
                "socket.user_mismatch",
                socket_id=connection.id,
                user_id=user_id,
                cookie_user_id=cookie_identity.id,
            )
            await _reply_error(hub, connection, "User identity mismatch")
            return
        await hub.bind_user(connection, user_id)
        return

    if action is SocketAction.UNSET_USER_SOCKET:
        await hub.unbind_user(connection)
        return

    if action is SocketAction.USER_WATCH:
        if data in (None, ""):
            await _reply_error(hub, connection, "User id is required")
            return
        await hub.watch_user(connection, str(data))
        return

    event = RELAYED_ACTIONS[action]
    if connection.topic is None:
        logger.info(
            "socket.relay_without_topic",
            socket_id=connection.id,
            event_name=event.value,
        )
        return
    logger.info(
        "socket.relay",
        socket_id=connection.id,
        event_name=event.value,
        topic=connection.topic,
    )
    await hub.emit_to_topic(connection.topic, event, data)


async def _reply_error(
    hub: InMemoryRealtimeHub, connection: Connection, detail: str
) -> None:
    await hub.emit_to_connection(connection, SystemEvent.ERROR, {"detail": detail})
