from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and dumps the camelCase field names used on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_changes(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)


class ApiMessage(BaseModel):
    msg: str
