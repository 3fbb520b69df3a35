"""Common/shared schemas."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes snake_case fields as camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ErrorResponse(BaseModel):
    detail: str
    type: str | None = None
    operation: str | None = None
    field: str | None = None
    problems: list[str] | None = None


class HealthResponse(BaseModel):
    status: str
