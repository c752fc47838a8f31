"""Board aggregate: templates, patches, nested lookups and activity records.

A board is a plain JSON document. Groups, tasks and comments are nested
inside it and are addressed by ``_id`` equality.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.domain.enums import ActivityAction, EntityType

ID_ALPHABET = string.ascii_letters + string.digits
ID_LENGTH = 6

DEFAULT_BOARD_DESCRIPTION = (
    "Manage any type of project. Assign owners, set timelines and keep track "
    "of where your project stands."
)
DEFAULT_CMPS_ORDER = [
    "checkbox",
    "title",
    "description",
    "status",
    "dueDate",
    "priority",
    "memberIds",
    "files",
]

BOARD_MUTABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "isStarred",
        "archivedAt",
        "label",
        "members",
        "groups",
        "cmpsOrder",
        "style",
    }
)
GROUP_MUTABLE_FIELDS = frozenset({"title", "archivedAt", "style", "tasks"})
TASK_MUTABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "dueDate",
        "archivedAt",
        "members",
        "memberIds",
        "labels",
        "checklists",
        "files",
        "style",
    }
)
COMMENT_MUTABLE_FIELDS = frozenset({"title"})


def make_id(length: int = ID_LENGTH) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def create_task(title: str, **options: Any) -> dict[str, Any]:
    return {
        "_id": make_id(),
        "title": title,
        "archivedAt": options.get("archivedAt"),
        "status": options.get("status") or "Not Started",
        "priority": options.get("priority") or "Low",
        "dueDate": options.get("dueDate"),
        "description": options.get("description"),
        "comments": list(options.get("comments") or []),
        "checklists": list(options.get("checklists") or []),
        "memberIds": list(options.get("memberIds") or []),
        "byMember": options.get("byMember"),
        "style": dict(options.get("style") or {}),
    }


def empty_task(title: str = "New Task") -> dict[str, Any]:
    return {
        "_id": make_id(),
        "title": title,
        "description": "",
        "status": "Not Started",
        "priority": "Low",
        "dueDate": None,
        "members": [],
        "labels": [],
        "comments": [],
        "createdBy": [],
    }


def empty_group(
    title: str = "Group Title",
    style: dict[str, Any] | None = None,
    tasks: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "_id": make_id(),
        "title": title,
        "archivedAt": None,
        "style": dict(style or {}),
        "tasks": list(tasks or []),
        "createdBy": [],
    }


def empty_board(
    title: str | None,
    label: str | None,
    created_by: dict[str, Any] | None,
) -> dict[str, Any]:
    prefix = label or "Item"
    tasks = [
        create_task(f"{prefix} 1", status="Done", priority="High"),
        create_task(f"{prefix} 2", status="Working on it", priority="Medium"),
        create_task(f"{prefix} 3"),
        create_task(f"{prefix} 4"),
        create_task(f"{prefix} 5"),
    ]
    return {
        "title": title,
        "description": DEFAULT_BOARD_DESCRIPTION,
        "isStarred": False,
        "archivedAt": None,
        "createdBy": created_by,
        "label": label,
        "members": [],
        "groups": [
            empty_group("Group Title", {"backgroundColor": "#579bfc"}, tasks[:3]),
            empty_group("Group Title", {"backgroundColor": "#a25ddc"}, tasks[3:]),
        ],
        "comments": [],
        "activities": [],
        "cmpsOrder": list(DEFAULT_CMPS_ORDER),
    }


def _apply_patch(
    entity: dict[str, Any],
    changes: dict[str, Any],
    allowed: frozenset[str],
) -> dict[str, Any]:
    for field, value in changes.items():
        if field in allowed:
            entity[field] = value
    return entity


def _carry_activities(
    current: list[dict[str, Any]] | None, incoming: Any
) -> Any:
    """Keep the stored activity log of every nested item the new list still holds."""
    if not isinstance(incoming, list):
        return incoming
    known = {item.get("_id"): item for item in current or [] if isinstance(item, dict)}
    carried = []
    for item in incoming:
        stored = known.get(item.get("_id")) if isinstance(item, dict) else None
        if stored is None:
            carried.append(item)
            continue
        item = dict(item)
        item["activities"] = list(stored.get("activities") or [])
        for nested in ("tasks", "comments"):
            if nested in item:
                item[nested] = _carry_activities(stored.get(nested), item[nested])
        carried.append(item)
    return carried


def apply_board_patch(board: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    if "groups" in changes:
        changes = {
            **changes,
            "groups": _carry_activities(board.get("groups"), changes["groups"]),
        }
    return _apply_patch(board, changes, BOARD_MUTABLE_FIELDS)


def apply_group_patch(group: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    if "tasks" in changes:
        changes = {
            **changes,
            "tasks": _carry_activities(group.get("tasks"), changes["tasks"]),
        }
    return _apply_patch(group, changes, GROUP_MUTABLE_FIELDS)


def apply_task_patch(task: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    return _apply_patch(task, changes, TASK_MUTABLE_FIELDS)


def apply_comment_patch(
    comment: dict[str, Any], changes: dict[str, Any]
) -> dict[str, Any]:
    return _apply_patch(comment, changes, COMMENT_MUTABLE_FIELDS)


def _find_by_id(items: list[dict[str, Any]], item_id: str) -> dict[str, Any] | None:
    return next((item for item in items if item.get("_id") == item_id), None)


def find_group(board: dict[str, Any], group_id: str) -> dict[str, Any] | None:
    return _find_by_id(board.get("groups") or [], group_id)


def find_task(group: dict[str, Any], task_id: str) -> dict[str, Any] | None:
    return _find_by_id(group.get("tasks") or [], task_id)


def find_task_in_board(board: dict[str, Any], task_id: str) -> dict[str, Any] | None:
    for group in board.get("groups") or []:
        task = find_task(group, task_id)
        if task is not None:
            return task
    return None


def find_comment(container: dict[str, Any], comment_id: str) -> dict[str, Any] | None:
    return _find_by_id(container.get("comments") or [], comment_id)


def iter_comment_containers(board: dict[str, Any]) -> Iterator[dict[str, Any]]:
    yield board
    for group in board.get("groups") or []:
        yield group
        yield from group.get("tasks") or []


@dataclass(frozen=True, slots=True)
class CommentTarget:
    """Which item of a board holds a comment list.

    Precedence is task > group > board: the most specific identifier given
    decides the container.
    """

    kind: EntityType
    group_id: str | None = None
    task_id: str | None = None

    @classmethod
    def resolve(cls, group_id: str | None, task_id: str | None) -> CommentTarget:
        if task_id:
            return cls(EntityType.TASK, group_id=group_id or None, task_id=task_id)
        if group_id:
            return cls(EntityType.GROUP, group_id=group_id)
        return cls(EntityType.BOARD)


def create_activity(
    user_id: str | None,
    action: ActivityAction,
    entity_type: EntityType,
    entity_id: str,
) -> dict[str, Any]:
    return {
        "userId": user_id,
        "action": action.value,
        "entity": entity_id,
        "entityType": entity_type.value,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def append_activity(board: dict[str, Any], activity: dict[str, Any]) -> None:
    """Append to the board log and to the nested entity the activity names."""
    board.setdefault("activities", []).append(activity)

    entity_id = activity["entity"]
    entity_type = activity["entityType"]
    target: dict[str, Any] | None = None
    if entity_type == EntityType.GROUP.value:
        target = find_group(board, entity_id)
    elif entity_type == EntityType.TASK.value:
        target = find_task_in_board(board, entity_id)
    elif entity_type == EntityType.COMMENT.value:
        for container in iter_comment_containers(board):
            target = find_comment(container, entity_id)
            if target is not None:
                break

    if target is not None:
        target.setdefault("activities", []).append(dict(activity))
