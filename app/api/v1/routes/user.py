from typing import Any, NoReturn

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_user_service, require_identity
from app.core.context import Identity
from app.schemas.common import ApiMessage
from app.schemas.user import UserUpdateRequest
from app.services.errors import NotFoundError, StoreError
from app.services.user_service import UserService

router = APIRouter()
logger = structlog.get_logger(__name__)


def _raise_for_service_error(exc: Exception, detail: str) -> NoReturn:
    logger.error("user.request_failed", detail=detail, error_type=type(exc).__name__)
    if isinstance(exc, StoreError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
        ) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc


@router.get("")
async def get_users(
    txt: str = "",
    service: UserService = Depends(get_user_service),
    identity: Identity = Depends(require_identity),
) -> list[dict[str, Any]]:
    try:
        return await service.query(txt)
    except StoreError as exc:
        _raise_for_service_error(exc, "Failed to get users")


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        return await service.get_by_id(user_id)
    except (NotFoundError, StoreError) as exc:
        _raise_for_service_error(exc, "Failed to get user")


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    service: UserService = Depends(get_user_service),
    identity: Identity = Depends(require_identity),
) -> dict[str, Any]:
    try:
        return await service.update(user_id, payload.to_changes())
    except (NotFoundError, StoreError) as exc:
        _raise_for_service_error(exc, "Failed to update user")


@router.delete("/{user_id}", response_model=ApiMessage)
async def remove_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
    identity: Identity = Depends(require_identity),
) -> ApiMessage:
    try:
        await service.remove(user_id)
    except (NotFoundError, StoreError) as exc:
        _raise_for_service_error(exc, "Failed to remove user")
    return ApiMessage(msg="Deleted successfully")
