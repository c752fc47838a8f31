from fastapi import APIRouter

from app.api.v1.routes import ai, auth, board, health, realtime, user

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(board.router, prefix="/board", tags=["board"])
api_router.include_router(user.router, prefix="/user", tags=["user"])
api_router.include_router(ai.router, prefix="/ai", tags=["ai"])
api_router.include_router(realtime.router, tags=["realtime"])
