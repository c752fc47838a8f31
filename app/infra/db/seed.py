from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password
from app.domain.board import append_activity, create_activity, empty_board
from app.domain.enums import ActivityAction, EntityType
from app.infra.db.repositories import BoardRepository, UserRepository
from app.services.user_service import strip_password

logger = structlog.get_logger(__name__)

DEFAULT_USERS: list[dict[str, str | bool]] = [
    {
        "fullname": "Bar Ben Haim",
        "email": "demo.owner@example.com",
        "password": "Owner@123",
        "isAdmin": True,
    },
    {
        "fullname": "Dana Levi",
        "email": "dana.levi@example.com",
        "password": "Member@123",
        "isAdmin": False,
    },
    {
        "fullname": "Noam Cohen",
        "email": "noam.cohen@example.com",
        "password": "Member@123",
        "isAdmin": False,
    },
]

DEFAULT_BOARD: dict[str, str] = {
    "title": "Product Launch",
    "label": "Task",
}


async def seed_default_users(session: AsyncSession) -> list[dict[str, Any]]:
    users = UserRepository(session)
    seeded: list[dict[str, Any]] = []
    for item in DEFAULT_USERS:
        email = str(item["email"])
        existing = await users.get_by_email(email)
        if existing is not None:
            seeded.append(existing)
            continue

        seeded.append(
            await users.insert_one(
                {
                    "email": email,
                    "password": hash_password(str(item["password"])),
                    "fullname": str(item["fullname"]),
                    "imgUrl": None,
                    "isAdmin": bool(item["isAdmin"]),
                }
            )
        )
    logger.info("seed.users_ready", count=len(seeded))
    return seeded


async def seed_default_board(
    session: AsyncSession, members: list[dict[str, Any]]
) -> dict[str, Any] | None:
    boards = BoardRepository(session)
    if await boards.find_one({"title": DEFAULT_BOARD["title"]}) is not None:
        return None

    owner = members[0] if members else None
    created_by = (
        {"_id": owner["_id"], "fullname": owner["fullname"], "imgUrl": owner.get("imgUrl")}
        if owner
        else None
    )
    board = empty_board(DEFAULT_BOARD["title"], DEFAULT_BOARD["label"], created_by)
    board["members"] = [strip_password(member) for member in members]

    saved = await boards.insert_one(board)
    append_activity(
        saved,
        create_activity(
            created_by["_id"] if created_by else None,
            ActivityAction.CREATE,
            EntityType.BOARD,
            saved["_id"],
        ),
    )
    saved = await boards.replace_one(saved)
    logger.info("seed.board_added", board_id=saved["_id"])
    return saved


async def seed_demo_data(session: AsyncSession) -> None:
    members = await seed_default_users(session)
    await seed_default_board(session, members)
