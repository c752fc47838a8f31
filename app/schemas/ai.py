from typing import Any

from pydantic import BaseModel, Field


class GenerateBoardRequest(BaseModel):
    description: str = Field(default="", max_length=4000)


class GenerateBoardResponse(BaseModel):
    message: str
    data: dict[str, Any]
