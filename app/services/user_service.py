from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import log_failures
from app.infra.db.repositories import UserRepository
from app.services.errors import UserNotFoundError

logger = structlog.get_logger(__name__)

USER_UPDATABLE_FIELDS = ("fullname", "imgUrl", "score")


def strip_password(user: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in user.items() if key != "password"}


class UserService:
    def __init__(
        self,
        session: AsyncSession | None = None,
        users: UserRepository | None = None,
    ) -> None:
        self.users = users or UserRepository(session)

    async def query(self, txt: str | None = None) -> list[dict[str, Any]]:
        with log_failures(logger, "user.query_failed", txt=txt):
            users = await self.users.find(text=txt, text_fields=("email", "fullname"))
        return [strip_password(user) for user in users]

    async def get_by_id(self, user_id: str) -> dict[str, Any]:
        with log_failures(logger, "user.get_failed", user_id=user_id):
            user = await self.users.get_by_id(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
        return strip_password(user)

    async def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Return the stored account, password hash included, or None."""
        with log_failures(logger, "user.get_by_email_failed", email=email):
            return await self.users.get_by_email(email)

    async def add(self, user: dict[str, Any]) -> dict[str, Any]:
        user_to_add = {
            "email": user["email"],
            "password": user["password"],
            "fullname": user["fullname"],
            "imgUrl": user.get("imgUrl"),
            "isAdmin": bool(user.get("isAdmin", False)),
        }
        with log_failures(logger, "user.add_failed", email=user_to_add["email"]):
            added = await self.users.insert_one(user_to_add)
        logger.info("user.added", user_id=added["_id"])
        return strip_password(added)

    async def update(self, user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        with log_failures(logger, "user.update_failed", user_id=user_id):
            user = await self.users.get_by_id(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            for field in USER_UPDATABLE_FIELDS:
                if field in changes:
                    user[field] = changes[field]
            saved = await self.users.replace_one(user)
        return strip_password(saved)

    async def remove(self, user_id: str) -> None:
        with log_failures(logger, "user.remove_failed", user_id=user_id):
            removed = await self.users.delete_one(user_id)
            if not removed:
                raise UserNotFoundError(user_id)

    async def add_activity(self, user_id: str, activity: dict[str, Any]) -> None:
        with log_failures(logger, "user.add_activity_failed", user_id=user_id):
            user = await self.users.get_by_id(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            user.setdefault("activities", []).append(activity)
            await self.users.replace_one(user)
