from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.db.documents import DocumentCollection

BOARD_COLLECTION_NAME = "board"
USER_COLLECTION_NAME = "user"


class BoardRepository(DocumentCollection):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, BOARD_COLLECTION_NAME)


class UserRepository(DocumentCollection):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, USER_COLLECTION_NAME)

    async def get_by_email(self, email: str) -> dict[str, Any] | None:
        return await self.find_one({"email": email})
