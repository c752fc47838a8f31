from enum import Enum


class ActivityAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(str, Enum):
    BOARD = "board"
    GROUP = "group"
    TASK = "task"
    COMMENT = "comment"
