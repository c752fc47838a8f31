from dataclasses import dataclass
from time import time
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import Identity, current_identity
from app.core.logging import log_failures
from app.domain.board import (
    CommentTarget,
    append_activity,
    apply_board_patch,
    apply_comment_patch,
    apply_group_patch,
    apply_task_patch,
    create_activity,
    empty_board,
    empty_group,
    empty_task,
    find_comment,
    find_group,
    find_task,
    find_task_in_board,
    make_id,
)
from app.domain.enums import ActivityAction, EntityType
from app.infra.db.repositories import BoardRepository, UserRepository
from app.services.errors import (
    BoardNotFoundError,
    CommentAuthorMismatchError,
    CommentNotFoundError,
    GroupNotFoundError,
    NotAuthenticatedError,
    TaskNotFoundError,
    ValidationError,
)
from app.services.user_service import strip_password

logger = structlog.get_logger(__name__)

PAGE_SIZE = 20
BOARD_TEXT_FIELDS = ("title", "description")


@dataclass(slots=True)
class BoardFilter:
    txt: str = ""
    sort_field: str | None = None
    sort_dir: int = 1
    page_idx: int | None = None


class BoardService:
    """Board aggregate operations.

    Every nested mutation loads the whole board, edits it in memory and
    writes the whole document back. Concurrent edits to one board are
    last-writer-wins.
    """

    def __init__(
        self,
        session: AsyncSession | None = None,
        boards: BoardRepository | None = None,
        users: UserRepository | None = None,
    ) -> None:
        self.boards = boards or BoardRepository(session)
        self.users = users or UserRepository(session)

    async def query(self, filter_by: BoardFilter | None = None) -> list[dict[str, Any]]:
        filter_by = filter_by or BoardFilter()
        skip = limit = None
        if filter_by.page_idx is not None:
            skip = filter_by.page_idx * PAGE_SIZE
            limit = PAGE_SIZE
        with log_failures(logger, "board.query_failed", txt=filter_by.txt):
            return await self.boards.find(
                text=filter_by.txt,
                text_fields=BOARD_TEXT_FIELDS,
                sort_field=filter_by.sort_field,
                sort_dir=filter_by.sort_dir,
                skip=skip,
                limit=limit,
            )

    async def get_by_id(self, board_id: str) -> dict[str, Any]:
        with log_failures(logger, "board.get_failed", board_id=board_id):
            board = await self.boards.get_by_id(board_id)
            if board is None:
                raise BoardNotFoundError(board_id)
        return board

    async def add_board(self, board: dict[str, Any]) -> dict[str, Any]:
        identity = current_identity()
        created_by = identity.to_member() if identity else board.get("createdBy")

        with log_failures(logger, "board.add_failed", title=board.get("title")):
            members = [strip_password(user) for user in await self.users.find()]

            if board.get("isStarred"):
                template: dict[str, Any] = {
                    "groups": [],
                    "comments": [],
                    "activities": [],
                }
            else:
                template = empty_board(board.get("title"), board.get("label"), created_by)
            new_board = apply_board_patch(template, board)
            new_board["createdBy"] = created_by
            new_board["members"] = members
            new_board.setdefault("activities", [])

            saved = await self.boards.insert_one(new_board)
            creator_id = created_by.get("_id") if created_by else None
            append_activity(
                saved,
                create_activity(
                    creator_id, ActivityAction.CREATE, EntityType.BOARD, saved["_id"]
                ),
            )
            saved = await self.boards.replace_one(saved)

        logger.info("board.added", board_id=saved["_id"])
        return saved

    async def update_board(
        self, board_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        with log_failures(logger, "board.update_failed", board_id=board_id):
            board = await self.get_by_id(board_id)
            apply_board_patch(board, changes)
            await self.boards.replace_one(board)
            updated = await self.log_activity(
                board_id,
                self._acting_user_id(),
                ActivityAction.UPDATE,
                EntityType.BOARD,
                board_id,
            )
        return updated or board

    async def remove_board(self, board_id: str) -> str:
        with log_failures(logger, "board.remove_failed", board_id=board_id):
            removed = await self.boards.delete_one(board_id)
            if not removed:
                raise BoardNotFoundError(board_id)
        logger.info("board.removed", board_id=board_id, user_id=self._acting_user_id())
        return board_id

    async def add_group(self, board_id: str, group: dict[str, Any]) -> dict[str, Any]:
        with log_failures(logger, "board.add_group_failed", board_id=board_id):
            if not group.get("title"):
                raise ValidationError("Group must have a title")
            board = await self.get_by_id(board_id)
            new_group = apply_group_patch(empty_group(), group)
            board.setdefault("groups", []).append(new_group)
            await self._save_and_log(
                board, ActivityAction.CREATE, EntityType.GROUP, new_group["_id"]
            )
        return new_group

    async def update_group(
        self, board_id: str, group_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        with log_failures(
            logger, "board.update_group_failed", board_id=board_id, group_id=group_id
        ):
            board = await self.get_by_id(board_id)
            group = self._require_group(board, group_id)
            apply_group_patch(group, changes)
            await self._save_and_log(board, ActivityAction.UPDATE, EntityType.GROUP, group_id)
        return group

    async def remove_group(self, board_id: str, group_id: str) -> dict[str, Any]:
        with log_failures(
            logger, "board.remove_group_failed", board_id=board_id, group_id=group_id
        ):
            board = await self.get_by_id(board_id)
            group = self._require_group(board, group_id)
            board["groups"].remove(group)
            await self._save_and_log(board, ActivityAction.DELETE, EntityType.GROUP, group_id)
        return group

    async def add_task(
        self, board_id: str, group_id: str, task: dict[str, Any]
    ) -> dict[str, Any]:
        with log_failures(
            logger, "board.add_task_failed", board_id=board_id, group_id=group_id
        ):
            board = await self.get_by_id(board_id)
            group = self._require_group(board, group_id)
            new_task = apply_task_patch(empty_task(), task)
            group.setdefault("tasks", []).append(new_task)
            await self._save_and_log(
                board, ActivityAction.CREATE, EntityType.TASK, new_task["_id"]
            )
        return new_task

    async def update_task(
        self,
        board_id: str,
        group_id: str,
        task_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        with log_failures(
            logger,
            "board.update_task_failed",
            board_id=board_id,
            group_id=group_id,
            task_id=task_id,
        ):
            board = await self.get_by_id(board_id)
            group = self._require_group(board, group_id)
            task = self._require_task(group, task_id)
            apply_task_patch(task, changes)
            await self._save_and_log(board, ActivityAction.UPDATE, EntityType.TASK, task_id)
        return task

    async def remove_task(
        self, board_id: str, group_id: str, task_id: str
    ) -> dict[str, Any]:
        with log_failures(
            logger,
            "board.remove_task_failed",
            board_id=board_id,
            group_id=group_id,
            task_id=task_id,
        ):
            board = await self.get_by_id(board_id)
            group = self._require_group(board, group_id)
            task = self._require_task(group, task_id)
            group["tasks"].remove(task)
            await self._save_and_log(board, ActivityAction.DELETE, EntityType.TASK, task_id)
        return task

    async def get_comments(
        self,
        board_id: str,
        group_id: str | None = None,
        task_id: str | None = None,
    ) -> list[dict[str, Any]]:
        target = CommentTarget.resolve(group_id, task_id)
        with log_failures(
            logger, "board.get_comments_failed", board_id=board_id, target=target.kind.value
        ):
            board = await self.get_by_id(board_id)
            container = self._locate_comment_container(board, target)
        return list(container.get("comments") or [])

    async def add_comment(
        self,
        board_id: str,
        group_id: str | None,
        task_id: str | None,
        comment: dict[str, Any],
    ) -> dict[str, Any]:
        identity = self._require_identity()
        target = CommentTarget.resolve(group_id, task_id)
        with log_failures(
            logger, "board.add_comment_failed", board_id=board_id, target=target.kind.value
        ):
            board = await self.get_by_id(board_id)
            container = self._locate_comment_container(board, target)
            new_comment = {
                "_id": make_id(),
                "title": comment.get("title"),
                "createdAt": _now_millis(),
                "byMember": identity.to_member(),
            }
            container.setdefault("comments", []).append(new_comment)
            await self._save_and_log(
                board, ActivityAction.CREATE, EntityType.COMMENT, new_comment["_id"]
            )
        return new_comment

    async def update_comment(
        self,
        board_id: str,
        group_id: str | None,
        task_id: str | None,
        comment_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        identity = self._require_identity()
        target = CommentTarget.resolve(group_id, task_id)
        with log_failures(
            logger,
            "board.update_comment_failed",
            board_id=board_id,
            comment_id=comment_id,
        ):
            board = await self.get_by_id(board_id)
            container = self._locate_comment_container(board, target)
            comment = self._require_own_comment(container, comment_id, identity)
            apply_comment_patch(comment, changes)
            await self._save_and_log(
                board, ActivityAction.UPDATE, EntityType.COMMENT, comment_id
            )
        return comment

    async def delete_comment(
        self,
        board_id: str,
        group_id: str | None,
        task_id: str | None,
        comment_id: str,
    ) -> str:
        identity = self._require_identity()
        target = CommentTarget.resolve(group_id, task_id)
        with log_failures(
            logger,
            "board.delete_comment_failed",
            board_id=board_id,
            comment_id=comment_id,
        ):
            board = await self.get_by_id(board_id)
            container = self._locate_comment_container(board, target)
            comment = self._require_own_comment(container, comment_id, identity)
            container["comments"].remove(comment)
            await self._save_and_log(
                board, ActivityAction.DELETE, EntityType.COMMENT, comment_id
            )
        return comment_id

    async def log_activity(
        self,
        board_id: str,
        user_id: str | None,
        action: ActivityAction,
        entity_type: EntityType,
        entity_id: str,
    ) -> dict[str, Any] | None:
        """Append an activity record to a freshly read board and persist it."""
        board = await self.boards.get_by_id(board_id)
        if board is None:
            logger.warning(
                "board.activity_skipped", board_id=board_id, entity_id=entity_id
            )
            return None
        append_activity(board, create_activity(user_id, action, entity_type, entity_id))
        return await self.boards.replace_one(board)

    async def get_board_activities(self, board_id: str) -> list[dict[str, Any]]:
        board = await self.get_by_id(board_id)
        return list(board.get("activities") or [])

    async def _save_and_log(
        self,
        board: dict[str, Any],
        action: ActivityAction,
        entity_type: EntityType,
        entity_id: str,
    ) -> None:
        await self.boards.replace_one(board)
        await self.log_activity(
            board["_id"], self._acting_user_id(), action, entity_type, entity_id
        )

    @staticmethod
    def _acting_user_id() -> str | None:
        identity = current_identity()
        return identity.id if identity else None

    @staticmethod
    def _require_identity() -> Identity:
        identity = current_identity()
        if identity is None:
            raise NotAuthenticatedError()
        return identity

    @staticmethod
    def _require_group(board: dict[str, Any], group_id: str) -> dict[str, Any]:
        group = find_group(board, group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    @staticmethod
    def _require_task(group: dict[str, Any], task_id: str) -> dict[str, Any]:
        task = find_task(group, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _locate_comment_container(
        self, board: dict[str, Any], target: CommentTarget
    ) -> dict[str, Any]:
        if target.kind is EntityType.BOARD:
            return board
        if target.kind is EntityType.GROUP:
            return self._require_group(board, target.group_id)

        if target.group_id is not None:
            return self._require_task(
                self._require_group(board, target.group_id), target.task_id
            )
        task = find_task_in_board(board, target.task_id)
        if task is None:
            raise TaskNotFoundError(target.task_id)
        return task

    @staticmethod
    def _require_own_comment(
        container: dict[str, Any], comment_id: str, identity: Identity
    ) -> dict[str, Any]:
        comment = find_comment(container, comment_id)
        if comment is None:
            raise CommentNotFoundError(comment_id)
        author_id = (comment.get("byMember") or {}).get("_id")
        if author_id != identity.id:
            raise CommentAuthorMismatchError(comment_id, identity.id)
        return comment


def _now_millis() -> int:
    return int(time() * 1000)
