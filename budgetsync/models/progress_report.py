from pydantic import BaseModel, Field
import datetime as dt
from uuid import UUID
from decimal import Decimal
from budgetsync.models.shared import Money, TimestampMixin


class MaterialInput(BaseModel):
    """A material line submitted together with its progress report."""
    item_name: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0)
    unit: str = Field(min_length=1)
    cost: Decimal = Field(ge=0)
    category_id: UUID | None = None


class MaterialCreate(MaterialInput):
    progress_report_id: UUID


class MaterialResponse(BaseModel):
    id: UUID
    progress_report_id: UUID
    item_name: str
    quantity: Money
    unit: str
    cost: Money
    category_id: UUID | None = None


class ProgressReportCreate(BaseModel):
    project_id: UUID
    percent_complete: int = Field(ge=0, le=100)
    date: dt.date
    notes: str | None = None
    materials: list[MaterialInput] = []


class ProgressReportResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    percent_complete: int
    date: dt.date
    notes: str | None = None
    materials: list[MaterialResponse] = []
