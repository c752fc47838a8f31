"""Per-request identity context.

The identity is bound once at the top of request dispatch and read from
anywhere below it. Each request runs in its own task, and therefore its own
copy of the context, so concurrent requests never observe each other's
identity.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Identity:
    id: str
    email: str
    fullname: str
    img_url: str | None = None
    is_admin: bool = False

    def to_token_claims(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "email": self.email,
            "fullname": self.fullname,
            "imgUrl": self.img_url,
            "isAdmin": self.is_admin,
        }

    def to_member(self) -> dict[str, Any]:
        return {"_id": self.id, "fullname": self.fullname, "imgUrl": self.img_url}

    @classmethod
    def from_token_claims(cls, claims: dict[str, Any]) -> Identity:
        return cls(
            id=str(claims["_id"]),
            email=str(claims.get("email") or ""),
            fullname=str(claims.get("fullname") or ""),
            img_url=claims.get("imgUrl"),
            is_admin=bool(claims.get("isAdmin", False)),
        )


_current_identity: ContextVar[Identity | None] = ContextVar(
    "current_identity", default=None
)


def bind_identity(identity: Identity | None) -> Token[Identity | None]:
    return _current_identity.set(identity)


def reset_identity(token: Token[Identity | None]) -> None:
    _current_identity.reset(token)


def current_identity() -> Identity | None:
    return _current_identity.get()
