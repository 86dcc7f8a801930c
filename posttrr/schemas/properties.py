"""Property listing schemas."""

from pydantic import Field

from posttrr.schemas.common import CamelModel


class CreatePropertyRequest(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None


class RejectPropertyRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=2000)


class PropertyItem(CamelModel):
    id: str
    owner_id: str
    title: str
    description: str | None
    status: str
    rejection_reason: str | None
    created_at: str | None
    moderated_at: str | None
