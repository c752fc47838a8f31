from pydantic import Field

from app.schemas.common import CamelModel


class UserUpdateRequest(CamelModel):
    fullname: str | None = Field(default=None, min_length=1, max_length=120)
    img_url: str | None = None
    score: int | None = None
