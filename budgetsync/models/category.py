from pydantic import BaseModel, Field
from uuid import UUID
from budgetsync.models.shared import TimestampMixin

HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str = Field(default="#3b82f6", pattern=HEX_COLOR)


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    color: str | None = Field(default=None, pattern=HEX_COLOR)


class CategoryResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    name: str
    color: str | None = None
