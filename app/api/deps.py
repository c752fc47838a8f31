from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import Identity, current_identity
from app.core.db import get_db_session
from app.infra.realtime.publisher import NoopRealtimePublisher, RealtimePublisher
from app.services.ai_service import AiService
from app.services.auth_service import AuthService
from app.services.board_service import BoardService
from app.services.user_service import UserService


async def require_identity() -> Identity:
    identity = current_identity()
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not Authenticated",
        )
    return identity


async def get_board_service(
    session: AsyncSession = Depends(get_db_session),
) -> BoardService:
    return BoardService(session=session)


async def get_user_service(
    session: AsyncSession = Depends(get_db_session),
) -> UserService:
    return UserService(session=session)


async def get_auth_service(
    session: AsyncSession = Depends(get_db_session),
) -> AuthService:
    return AuthService(session=session)


async def get_ai_service() -> AiService:
    return AiService()


def get_realtime(request: Request) -> RealtimePublisher:
    hub = getattr(request.app.state, "realtime_hub", None)
    if hub is None:
        return NoopRealtimePublisher()
    return hub
