import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_ai_service
from app.schemas.ai import GenerateBoardRequest, GenerateBoardResponse
from app.services.ai_service import AiService
from app.services.errors import ExternalServiceError, ValidationError

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/generateBoard", response_model=GenerateBoardResponse)
async def generate_board(
    payload: GenerateBoardRequest,
    service: AiService = Depends(get_ai_service),
) -> GenerateBoardResponse:
    try:
        board = await service.generate_board_from_description(payload.description)
    except ValidationError as exc:
        logger.warning("ai.request_rejected", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Board description is required",
        ) from exc
    except ExternalServiceError as exc:
        logger.error(
            "ai.request_failed", error=str(exc), error_type=type(exc).__name__
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc

    return GenerateBoardResponse(message="Board generated successfully", data=board)
