from typing import Any

from app.schemas.common import CamelModel


class BoardPayload(CamelModel):
    title: str | None = None
    description: str | None = None
    is_starred: bool | None = None
    archived_at: int | str | None = None
    label: str | None = None
    members: list[dict[str, Any]] | None = None
    groups: list[dict[str, Any]] | None = None
    cmps_order: list[str] | None = None
    style: dict[str, Any] | None = None


class GroupPayload(CamelModel):
    title: str | None = None
    archived_at: int | str | None = None
    style: dict[str, Any] | None = None
    tasks: list[dict[str, Any]] | None = None


class TaskPayload(CamelModel):
    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    due_date: int | str | None = None
    archived_at: int | str | None = None
    members: list[dict[str, Any]] | None = None
    member_ids: list[str] | None = None
    labels: list[Any] | None = None
    checklists: list[dict[str, Any]] | None = None
    files: list[Any] | None = None
    style: dict[str, Any] | None = None


class CommentPayload(CamelModel):
    title: str | None = None
