from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.deps import get_auth_service
from app.core.config import get_settings
from app.schemas.auth import LoginRequest, SignupRequest
from app.schemas.common import ApiMessage
from app.services.auth_service import AuthService
from app.services.errors import (
    AuthenticationError,
    StoreError,
    ValidationError,
)

router = APIRouter()
settings = get_settings()
logger = structlog.get_logger(__name__)


def _set_login_cookie(response: Response, login_token: str) -> None:
    response.set_cookie(
        settings.login_token_cookie,
        login_token,
        max_age=settings.login_token_ttl_minutes * 60,
        httponly=True,
        samesite="none",
        secure=True,
    )


@router.post("/login")
async def login(
    payload: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    try:
        user = await service.login(payload.email or "", payload.password or "")
    except (AuthenticationError, StoreError) as exc:
        logger.warning("auth.login_failed", error_type=type(exc).__name__)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Failed to Login",
        ) from exc

    _set_login_cookie(response, service.get_login_token(user))
    return user


@router.post("/signup")
async def signup(
    payload: SignupRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    try:
        await service.signup(
            email=payload.email,
            password=payload.password,
            fullname=payload.fullname,
            img_url=payload.img_url,
        )
        user = await service.login(payload.email or "", payload.password or "")
    except (ValidationError, AuthenticationError, StoreError) as exc:
        logger.warning("auth.signup_failed", error_type=type(exc).__name__)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to signup",
        ) from exc

    _set_login_cookie(response, service.get_login_token(user))
    return user


@router.post("/logout", response_model=ApiMessage)
async def logout(response: Response) -> ApiMessage:
    response.delete_cookie(
        settings.login_token_cookie,
        httponly=True,
        samesite="none",
        secure=True,
    )
    return ApiMessage(msg="Logged out successfully")
