from pydantic import BaseModel

from app.schemas.common import CamelModel


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class SignupRequest(CamelModel):
    # Presence is checked by the service so a missing field is a 400, not a 422.
    email: str | None = None
    password: str | None = None
    fullname: str | None = None
    img_url: str | None = None
