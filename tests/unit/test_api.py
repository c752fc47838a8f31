import asyncio
import copy
import secrets
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from app.api.deps import get_ai_service, get_auth_service, get_board_service
from app.infra.realtime import Connection, InMemoryRealtimeHub
from app.main import app
from app.services.ai_service import AiService
from app.services.auth_service import AuthService
from app.services.board_service import BoardService
from app.services.user_service import UserService


class FakeDocumentCollection:
    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}

    async def get_by_id(self, document_id: str) -> dict[str, Any] | None:
        document = self.documents.get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def find(
        self, filters: dict[str, Any] | None = None, **_: Any
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(document)
            for document in self.documents.values()
            if all(document.get(field) == value for field, value in (filters or {}).items())
        ]

    async def get_by_email(self, email: str) -> dict[str, Any] | None:
        matches = await self.find({"email": email})
        return matches[0] if matches else None

    async def insert_one(self, document: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(document)
        stored["_id"] = secrets.token_hex(12)
        self.documents[stored["_id"]] = stored
        return copy.deepcopy(stored)

    async def replace_one(self, document: dict[str, Any]) -> dict[str, Any]:
        self.documents[document["_id"]] = copy.deepcopy(document)
        return copy.deepcopy(document)

    async def delete_one(self, document_id: str) -> bool:
        return self.documents.pop(document_id, None) is not None


class FakeWebSocket:
    async def accept(self) -> None:
        return None


class ApiState:
    def __init__(self) -> None:
        self.boards = FakeDocumentCollection()
        self.users = FakeDocumentCollection()
        self.hub = InMemoryRealtimeHub()
        self.client = TestClient(app)

    def auth_service(self) -> AuthService:
        return AuthService(users=UserService(users=self.users))

    def board_service(self) -> BoardService:
        return BoardService(boards=self.boards, users=self.users)

    def signup(self, email: str, fullname: str) -> tuple[dict[str, Any], dict[str, str]]:
        response = self.client.post(
            "/api/auth/signup",
            json={"email": email, "password": "s3cret!", "fullname": fullname},
        )
        assert response.status_code == 200
        assert "loginToken=" in response.headers["set-cookie"]
        user = response.json()
        token = self.auth_service().get_login_token(user)
        return user, {"Cookie": f"loginToken={token}"}


@pytest.fixture
def api() -> Iterator[ApiState]:
    state = ApiState()
    app.dependency_overrides[get_auth_service] = state.auth_service
    app.dependency_overrides[get_board_service] = state.board_service
    app.state.realtime_hub = state.hub
    try:
        yield state
    finally:
        app.dependency_overrides.clear()
        del app.state.realtime_hub


def drain(connection: Connection) -> list[dict[str, Any]]:
    envelopes = []
    while not connection.outbox.empty():
        envelope = connection.outbox.get_nowait()
        if envelope is not None:
            envelopes.append(envelope)
    return envelopes


def test_healthcheck(api: ApiState) -> None:
    response = api.client.get("/api/healthcheck")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_realtime_health_reports_connections(api: ApiState) -> None:
    asyncio.run(_join_topic(api.hub, "board-1", "user-a"))

    response = api.client.get("/api/health/realtime")

    assert response.status_code == 200
    assert response.json() == {"realtime": "ok", "connections": 1}


def test_signup_without_password_is_rejected(api: ApiState) -> None:
    response = api.client.post(
        "/api/auth/signup", json={"email": "x@x.com", "fullname": "X"}
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "Failed to signup"}
    assert api.users.documents == {}


def test_login_with_bad_password_is_unauthorized(api: ApiState) -> None:
    api.signup("avery@example.com", "Avery")

    response = api.client.post(
        "/api/auth/login", json={"email": "avery@example.com", "password": "nope"}
    )

    assert response.status_code == 401
    assert response.json() == {"detail": "Failed to Login"}


def test_board_routes_require_login(api: ApiState) -> None:
    response = api.client.get("/api/board")

    assert response.status_code == 401


def test_unknown_board_is_a_client_error(api: ApiState) -> None:
    _, avery_cookie = api.signup("avery@example.com", "Avery")

    response = api.client.get("/api/board/missing", headers=avery_cookie)

    assert response.status_code == 400
    assert response.json() == {"detail": "Failed to get board"}


def test_board_created_and_task_change_reaches_watching_socket(api: ApiState) -> None:
    avery, avery_cookie = api.signup("avery@example.com", "Avery")
    _, casey_cookie = api.signup("casey@example.com", "Casey")

    created = api.client.post(
        "/api/board", json={"title": "Roadmap", "label": "Task"}, headers=avery_cookie
    )
    assert created.status_code == 200
    board = created.json()
    assert board["_id"]
    assert len(board["activities"]) == 1
    assert board["activities"][0]["action"] == "create"
    assert board["activities"][0]["userId"] == avery["_id"]

    socket = asyncio.run(_join_topic(api.hub, board["_id"], avery["_id"]))

    group = board["groups"][0]
    task = group["tasks"][0]
    updated = api.client.put(
        f"/api/board/{board['_id']}/{group['_id']}/{task['_id']}",
        json={"status": "Done"},
        headers=casey_cookie,
    )

    assert updated.status_code == 200
    assert updated.json()["status"] == "Done"
    received = drain(socket)
    assert [envelope["event"] for envelope in received] == ["task-changed"]
    assert received[0]["topic"] == board["_id"]
    assert received[0]["payload"]["_id"] == task["_id"]

    activities = api.client.get(
        f"/api/board/{board['_id']}/activities", headers=avery_cookie
    ).json()
    assert [activity["action"] for activity in activities] == ["create", "update"]


def test_comment_of_other_user_cannot_be_deleted(api: ApiState) -> None:
    _, avery_cookie = api.signup("avery@example.com", "Avery")
    _, casey_cookie = api.signup("casey@example.com", "Casey")
    board = api.client.post(
        "/api/board", json={"title": "Roadmap"}, headers=avery_cookie
    ).json()

    comment = api.client.post(
        f"/api/board/{board['_id']}/comment", json={"title": "hi"}, headers=avery_cookie
    ).json()
    denied = api.client.delete(
        f"/api/board/{board['_id']}/comment/{comment['_id']}", headers=casey_cookie
    )
    allowed = api.client.delete(
        f"/api/board/{board['_id']}/comment/{comment['_id']}", headers=avery_cookie
    )

    assert denied.status_code == 400
    assert denied.json() == {"detail": "Failed to delete comment"}
    assert allowed.status_code == 200
    assert allowed.json() == {"msg": "Deleted successfully"}


async def _join_topic(hub: InMemoryRealtimeHub, topic: str, user_id: str) -> Connection:
    connection = await hub.connect(FakeWebSocket())
    await hub.subscribe(connection, topic)
    await hub.bind_user(connection, user_id)
    return connection


def test_task_change_skips_acting_socket_and_reaches_other_subscriber(
    api: ApiState,
) -> None:
    avery, avery_cookie = api.signup("avery@example.com", "Avery")
    casey, _ = api.signup("casey@example.com", "Casey")
    board = api.client.post(
        "/api/board", json={"title": "Roadmap"}, headers=avery_cookie
    ).json()
    avery_socket = asyncio.run(_join_topic(api.hub, board["_id"], avery["_id"]))
    casey_socket = asyncio.run(_join_topic(api.hub, board["_id"], casey["_id"]))

    group = board["groups"][0]
    task = group["tasks"][0]
    response = api.client.put(
        f"/api/board/{board['_id']}/{group['_id']}/{task['_id']}",
        json={"priority": "High"},
        headers=avery_cookie,
    )

    assert response.status_code == 200
    assert drain(avery_socket) == []
    received = drain(casey_socket)
    assert [envelope["event"] for envelope in received] == ["task-changed"]
    assert received[0]["payload"]["priority"] == "High"


class FailingHub:
    async def publish_change(self, change: Any) -> int:
        raise RuntimeError("hub is down")


def test_mutation_succeeds_when_realtime_publish_fails(api: ApiState) -> None:
    _, avery_cookie = api.signup("avery@example.com", "Avery")
    app.state.realtime_hub = FailingHub()

    created = api.client.post(
        "/api/board", json={"title": "Roadmap"}, headers=avery_cookie
    )

    assert created.status_code == 200
    assert created.json()["title"] == "Roadmap"
    assert len(api.boards.documents) == 1


async def _unreachable_model(description: str) -> dict[str, Any]:
    raise ConnectionError("model endpoint unreachable")


def test_generate_board_failure_is_logged_and_hidden(api: ApiState) -> None:
    app.dependency_overrides[get_ai_service] = lambda: AiService(
        generator=_unreachable_model
    )

    with capture_logs() as logs:
        response = api.client.post(
            "/api/ai/generateBoard", json={"description": "Plan a product launch"}
        )

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal Server Error"}
    assert "ai.request_failed" in [entry["event"] for entry in logs]
