from dataclasses import dataclass
from enum import Enum
from typing import Any


class BoardEvent(str, Enum):
    BOARD_ADDED = "board-added"
    BOARD_CHANGED = "board-changed"
    BOARD_REMOVED = "board-removed"
    GROUP_ADDED = "group-added"
    GROUP_CHANGED = "group-changed"
    GROUP_REMOVED = "group-removed"
    TASK_ADDED = "task-added"
    TASK_CHANGED = "task-changed"
    TASK_REMOVED = "task-removed"
    COMMENT_ADDED = "comment-added"
    COMMENT_UPDATED = "comment-update"
    COMMENT_REMOVED = "comment-removed"
    CHAT_MESSAGE_ADDED = "chat-add-msg"


class SystemEvent(str, Enum):
    CONNECTED = "system.connected"
    PONG = "system.pong"
    ERROR = "system.error"


class SocketAction(str, Enum):
    SET_TOPIC = "set-topic"
    SET_USER_SOCKET = "set-user-socket"
    UNSET_USER_SOCKET = "unset-user-socket"
    USER_WATCH = "user-watch"
    CHAT_SEND_MSG = "chat-send-msg"
    BOARD_UPDATED = "board-updated"
    BOARD_ADDED = "board-added"
    BOARD_REMOVED = "board-removed"
    TASK_UPDATED = "task-updated"
    PING = "ping"


# Client-originated relays re-emitted to the sender's topic.
RELAYED_ACTIONS: dict[SocketAction, BoardEvent] = {
    SocketAction.CHAT_SEND_MSG: BoardEvent.CHAT_MESSAGE_ADDED,
    SocketAction.BOARD_UPDATED: BoardEvent.BOARD_CHANGED,
    SocketAction.BOARD_ADDED: BoardEvent.BOARD_ADDED,
    SocketAction.BOARD_REMOVED: BoardEvent.BOARD_REMOVED,
    SocketAction.TASK_UPDATED: BoardEvent.TASK_CHANGED,
}


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A domain mutation to fan out once, excluding the acting user."""

    kind: BoardEvent
    payload: Any
    acting_user_id: str | None
    topic: str | None = None
