"""Shared schema building blocks."""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from posttrr.database import as_utc

T = TypeVar("T")


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Uniform success envelope."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class MessageResponse(BaseModel):
    """Envelope for operations that return no data."""

    success: bool = True
    message: str


def iso(value: datetime | None) -> str | None:
    """ISO-8601 in UTC, or None."""
    value = as_utc(value)
    return value.isoformat() if value else None
