from typing import Any, NoReturn

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_board_service, get_realtime, require_identity
from app.core.context import Identity
from app.infra.realtime.channels import board_topic
from app.infra.realtime.events import BoardEvent, ChangeEvent
from app.infra.realtime.publisher import RealtimePublisher
from app.schemas.board import BoardPayload, CommentPayload, GroupPayload, TaskPayload
from app.schemas.common import ApiMessage
from app.services.board_service import BoardFilter, BoardService
from app.services.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    StoreError,
    ValidationError,
)

router = APIRouter()
logger = structlog.get_logger(__name__)

SERVICE_ERRORS = (
    ValidationError,
    NotFoundError,
    AuthenticationError,
    AuthorizationError,
    StoreError,
)


def _raise_for_service_error(exc: Exception, detail: str) -> NoReturn:
    logger.error(
        "board.request_failed",
        detail=detail,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    if isinstance(exc, AuthenticationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not Authenticated"
        ) from exc
    if isinstance(exc, StoreError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
        ) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc


async def _publish(
    realtime: RealtimePublisher,
    kind: BoardEvent,
    payload: Any,
    board_id: str,
    identity: Identity,
) -> None:
    # The change is already stored; a failed notification must not fail the request.
    try:
        await realtime.publish_change(
            ChangeEvent(
                kind=kind,
                payload=payload,
                acting_user_id=identity.id,
                topic=board_topic(board_id),
            )
        )
    except Exception as exc:
        logger.error(
            "board.publish_failed",
            event_name=kind.value,
            board_id=board_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )


@router.get("")
async def get_boards(
    txt: str = "",
    sort_field: str | None = Query(default=None, alias="sortField"),
    sort_dir: int = Query(default=1, alias="sortDir"),
    page_idx: int | None = Query(default=None, alias="pageIdx", ge=0),
    service: BoardService = Depends(get_board_service),
    identity: Identity = Depends(require_identity),
) -> list[dict[str, Any]]:
    try:
        return await service.query(
            BoardFilter(
                txt=txt, sort_field=sort_field, sort_dir=sort_dir, page_idx=page_idx
            )
        )
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to get boards")


@router.get("/{board_id}")
async def get_board(
    board_id: str,
    service: BoardService = Depends(get_board_service),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        return await service.get_by_id(board_id)
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to get board")


@router.post("")
async def add_board(
    payload: BoardPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        board = await service.add_board(payload.to_changes())
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to add board")

    await _publish(realtime, BoardEvent.BOARD_ADDED, board, board["_id"], identity)
    return board


@router.put("/{board_id}")
async def update_board(
    board_id: str,
    payload: BoardPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        board = await service.update_board(board_id, payload.to_changes())
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to update board")

    await _publish(realtime, BoardEvent.BOARD_CHANGED, board, board_id, identity)
    return board


@router.delete("/{board_id}")
async def remove_board(
    board_id: str,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> str:
    try:
        removed_id = await service.remove_board(board_id)
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to remove board")

    await _publish(realtime, BoardEvent.BOARD_REMOVED, removed_id, board_id, identity)
    return removed_id


@router.get("/{board_id}/activities")
async def get_board_activities(
    board_id: str,
    service: BoardService = Depends(get_board_service),
    identity: Identity = Depends(require_identity),
) -> list[dict[str, Any]]:
    try:
        return await service.get_board_activities(board_id)
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to get board activities")


@router.post("/{board_id}/group")
async def add_group(
    board_id: str,
    payload: GroupPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        group = await service.add_group(board_id, payload.to_changes())
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to add group")

    await _publish(realtime, BoardEvent.GROUP_ADDED, group, board_id, identity)
    return group


# Literal "comment" segments are declared before the id-only routes of the
# same depth so they win the match.


@router.get("/{board_id}/comment")
async def get_board_comments(
    board_id: str,
    service: BoardService = Depends(get_board_service),
    identity: Identity = Depends(require_identity),
) -> list[dict[str, Any]]:
    return await _get_comments(service, board_id)


@router.post("/{board_id}/comment")
async def add_board_comment(
    board_id: str,
    payload: CommentPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    return await _add_comment(service, realtime, identity, board_id, None, None, payload)


@router.put("/{board_id}/comment/{comment_id}")
async def update_board_comment(
    board_id: str,
    comment_id: str,
    payload: CommentPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    return await _update_comment(
        service, realtime, identity, board_id, None, None, comment_id, payload
    )


@router.delete("/{board_id}/comment/{comment_id}", response_model=ApiMessage)
async def delete_board_comment(
    board_id: str,
    comment_id: str,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> ApiMessage:
    return await _delete_comment(
        service, realtime, identity, board_id, None, None, comment_id
    )


@router.put("/{board_id}/{group_id}")
async def update_group(
    board_id: str,
    group_id: str,
    payload: GroupPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        group = await service.update_group(board_id, group_id, payload.to_changes())
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to update group")

    await _publish(realtime, BoardEvent.GROUP_CHANGED, group, board_id, identity)
    return group


@router.delete("/{board_id}/{group_id}")
async def remove_group(
    board_id: str,
    group_id: str,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        group = await service.remove_group(board_id, group_id)
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to remove group")

    await _publish(realtime, BoardEvent.GROUP_REMOVED, group, board_id, identity)
    return group


@router.post("/{board_id}/{group_id}/task")
async def add_task(
    board_id: str,
    group_id: str,
    payload: TaskPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        task = await service.add_task(board_id, group_id, payload.to_changes())
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to add task")

    await _publish(realtime, BoardEvent.TASK_ADDED, task, board_id, identity)
    return task


@router.get("/{board_id}/{group_id}/comment")
async def get_group_comments(
    board_id: str,
    group_id: str,
    service: BoardService = Depends(get_board_service),
    identity: Identity = Depends(require_identity),
) -> list[dict[str, Any]]:
    return await _get_comments(service, board_id, group_id)


@router.post("/{board_id}/{group_id}/comment")
async def add_group_comment(
    board_id: str,
    group_id: str,
    payload: CommentPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    return await _add_comment(
        service, realtime, identity, board_id, group_id, None, payload
    )


@router.put("/{board_id}/{group_id}/comment/{comment_id}")
async def update_group_comment(
    board_id: str,
    group_id: str,
    comment_id: str,
    payload: CommentPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    return await _update_comment(
        service, realtime, identity, board_id, group_id, None, comment_id, payload
    )


@router.delete("/{board_id}/{group_id}/comment/{comment_id}", response_model=ApiMessage)
async def delete_group_comment(
    board_id: str,
    group_id: str,
    comment_id: str,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> ApiMessage:
    return await _delete_comment(
        service, realtime, identity, board_id, group_id, None, comment_id
    )


@router.put("/{board_id}/{group_id}/{task_id}")
async def update_task(
    board_id: str,
    group_id: str,
    task_id: str,
    payload: TaskPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        task = await service.update_task(
            board_id, group_id, task_id, payload.to_changes()
        )
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to update task")

    await _publish(realtime, BoardEvent.TASK_CHANGED, task, board_id, identity)
    return task


@router.delete("/{board_id}/{group_id}/{task_id}")
async def remove_task(
    board_id: str,
    group_id: str,
    task_id: str,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        task = await service.remove_task(board_id, group_id, task_id)
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to remove task")

    await _publish(realtime, BoardEvent.TASK_REMOVED, task, board_id, identity)
    return task


@router.get("/{board_id}/{group_id}/{task_id}/comment")
async def get_task_comments(
    board_id: str,
    group_id: str,
    task_id: str,
    service: BoardService = Depends(get_board_service),
    identity: Identity = Depends(require_identity),
) -> list[dict[str, Any]]:
    return await _get_comments(service, board_id, group_id, task_id)


@router.post("/{board_id}/{group_id}/{task_id}/comment")
async def add_task_comment(
    board_id: str,
    group_id: str,
    task_id: str,
    payload: CommentPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    return await _add_comment(
        service, realtime, identity, board_id, group_id, task_id, payload
    )


@router.put("/{board_id}/{group_id}/{task_id}/{comment_id}")
async def update_task_comment(
    board_id: str,
    group_id: str,
    task_id: str,
    comment_id: str,
    payload: CommentPayload,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    return await _update_comment(
        service, realtime, identity, board_id, group_id, task_id, comment_id, payload
    )


@router.delete("/{board_id}/{group_id}/{task_id}/{comment_id}", response_model=ApiMessage)
async def delete_task_comment(
    board_id: str,
    group_id: str,
    task_id: str,
    comment_id: str,
    service: BoardService = Depends(get_board_service),
    realtime: RealtimePublisher = Depends(get_realtime),
    identity: Identity = Depends(require_identity),
) -> ApiMessage:
    return await _delete_comment(
        service, realtime, identity, board_id, group_id, task_id, comment_id
    )


async def _get_comments(
    service: BoardService,
    board_id: str,
    group_id: str | None = None,
    task_id: str | None = None,
) -> list[dict[str, Any]]:
    try:
        return await service.get_comments(board_id, group_id, task_id)
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to get comments")


async def _add_comment(
    service: BoardService,
    realtime: RealtimePublisher,
    identity: Identity,
    board_id: str,
    group_id: str | None,
    task_id: str | None,
    payload: CommentPayload,
) -> dict[str, Any]:
    try:
        comment = await service.add_comment(
            board_id, group_id, task_id, payload.to_changes()
        )
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to add comment")

    await _publish(realtime, BoardEvent.COMMENT_ADDED, comment, board_id, identity)
    return comment


async def _update_comment(
    service: BoardService,
    realtime: RealtimePublisher,
    identity: Identity,
    board_id: str,
    group_id: str | None,
    task_id: str | None,
    comment_id: str,
    payload: CommentPayload,
) -> dict[str, Any]:
    try:
        comment = await service.update_comment(
            board_id, group_id, task_id, comment_id, payload.to_changes()
        )
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to update comment")

    await _publish(realtime, BoardEvent.COMMENT_UPDATED, comment, board_id, identity)
    return comment


async def _delete_comment(
    service: BoardService,
    realtime: RealtimePublisher,
    identity: Identity,
    board_id: str,
    group_id: str | None,
    task_id: str | None,
    comment_id: str,
) -> ApiMessage:
    try:
        removed_id = await service.delete_comment(
            board_id, group_id, task_id, comment_id
        )
    except SERVICE_ERRORS as exc:
        _raise_for_service_error(exc, "Failed to delete comment")

    await _publish(realtime, BoardEvent.COMMENT_REMOVED, removed_id, board_id, identity)
    return ApiMessage(msg="Deleted successfully")
