import copy
from typing import Any

import pytest

from app.services.errors import UserNotFoundError
from app.services.user_service import UserService


class FakeUserRepository:
    def __init__(self, documents: list[dict[str, Any]]) -> None:
        self.documents = {document["_id"]: document for document in documents}

    async def find(
        self, filters: dict[str, Any] | None = None, *, text: str | None = None, **_: Any
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(document)
            for document in self.documents.values()
            if not text or text.lower() in document["fullname"].lower()
        ]

    async def get_by_id(self, document_id: str) -> dict[str, Any] | None:
        document = self.documents.get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def replace_one(self, document: dict[str, Any]) -> dict[str, Any]:
        self.documents[document["_id"]] = copy.deepcopy(document)
        return copy.deepcopy(document)

    async def delete_one(self, document_id: str) -> bool:
        return self.documents.pop(document_id, None) is not None


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository(
        [
            {
                "_id": "user-a",
                "email": "avery@example.com",
                "fullname": "Avery",
                "password": "hash-a",
                "isAdmin": False,
            },
            {
                "_id": "user-b",
                "email": "blake@example.com",
                "fullname": "Blake",
                "password": "hash-b",
                "isAdmin": False,
            },
        ]
    )


@pytest.fixture
def service(users: FakeUserRepository) -> UserService:
    return UserService(users=users)


@pytest.mark.asyncio
async def test_query_strips_passwords(service: UserService) -> None:
    found = await service.query("ave")

    assert [user["_id"] for user in found] == ["user-a"]
    assert "password" not in found[0]


@pytest.mark.asyncio
async def test_update_changes_only_profile_fields(
    service: UserService, users: FakeUserRepository
) -> None:
    updated = await service.update(
        "user-a", {"fullname": "Avery Q", "score": 7, "isAdmin": True, "password": "x"}
    )

    assert updated["fullname"] == "Avery Q"
    assert updated["score"] == 7
    assert updated["isAdmin"] is False
    assert "password" not in updated
    assert users.documents["user-a"]["password"] == "hash-a"


@pytest.mark.asyncio
async def test_add_activity_appends_to_user(
    service: UserService, users: FakeUserRepository
) -> None:
    await service.add_activity("user-b", {"action": "create", "entity": "b1"})

    assert users.documents["user-b"]["activities"] == [
        {"action": "create", "entity": "b1"}
    ]


@pytest.mark.asyncio
async def test_missing_user_raises(service: UserService) -> None:
    with pytest.raises(UserNotFoundError):
        await service.get_by_id("nobody")
    with pytest.raises(UserNotFoundError):
        await service.remove("nobody")
