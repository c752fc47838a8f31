from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.context import Identity
from app.core.security import (
    decrypt_login_token,
    encrypt_login_token,
    hash_password,
    verify_password,
)
from app.services.errors import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    MissingSignupFieldsError,
)
from app.services.user_service import UserService, strip_password

logger = structlog.get_logger(__name__)


class AuthService:
    def __init__(
        self,
        session: AsyncSession | None = None,
        users: UserService | None = None,
    ) -> None:
        self.users = users or UserService(session)
        self.settings = get_settings()

    async def signup(
        self,
        *,
        email: str | None,
        password: str | None,
        fullname: str | None,
        img_url: str | None = None,
        is_admin: bool = False,
    ) -> dict[str, Any]:
        normalized_email = (email or "").strip().lower()
        missing = [
            name
            for name, value in (
                ("email", normalized_email),
                ("password", password),
                ("fullname", (fullname or "").strip()),
            )
            if not value
        ]
        if missing:
            raise MissingSignupFieldsError(missing)

        if await self.users.get_by_email(normalized_email) is not None:
            raise EmailAlreadyRegisteredError()

        account = await self.users.add(
            {
                "email": normalized_email,
                "password": hash_password(password),
                "fullname": fullname.strip(),
                "imgUrl": img_url,
                "isAdmin": is_admin,
            }
        )
        logger.info("auth.signup", user_id=account["_id"])
        return account

    async def login(self, email: str, password: str) -> dict[str, Any]:
        normalized_email = (email or "").strip().lower()
        if not normalized_email:
            raise InvalidCredentialsError()

        user = await self.users.get_by_email(normalized_email)
        if user is None:
            raise InvalidCredentialsError()
        if not verify_password(password or "", user.get("password") or ""):
            raise InvalidCredentialsError()

        logged_in = strip_password(user)
        logged_in["_id"] = str(logged_in["_id"])
        logger.info("auth.login", user_id=logged_in["_id"])
        return logged_in

    def get_login_token(self, user: dict[str, Any]) -> str:
        identity = Identity(
            id=str(user["_id"]),
            email=user.get("email") or "",
            fullname=user.get("fullname") or "",
            img_url=user.get("imgUrl"),
            is_admin=bool(user.get("isAdmin", False)),
        )
        return encrypt_login_token(
            identity.to_token_claims(),
            secret=self.settings.login_token_secret,
            ttl_minutes=self.settings.login_token_ttl_minutes,
        )

    def validate_token(self, login_token: str | None) -> Identity | None:
        if not login_token:
            return None
        try:
            claims = decrypt_login_token(login_token, self.settings.login_token_secret)
            return Identity.from_token_claims(claims)
        except (ValueError, KeyError, TypeError):
            return None
