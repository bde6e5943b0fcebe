from pydantic import BaseModel, Field, model_validator
from datetime import date
from uuid import UUID
from decimal import Decimal
from budgetsync.models.shared import Money, TimestampMixin


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    total_budget: Decimal = Field(gt=0)
    labor_budget: Decimal = Field(ge=0)
    materials_budget: Decimal = Field(ge=0)
    equipment_budget: Decimal = Field(ge=0)
    subcontractors_budget: Decimal = Field(ge=0)
    overhead_budget: Decimal = Field(ge=0)
    start_date: date
    end_date: date | None = None

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ProjectResponse(TimestampMixin):
    id: UUID
    name: str
    total_budget: Money
    labor_budget: Money
    materials_budget: Money
    equipment_budget: Money
    subcontractors_budget: Money
    overhead_budget: Money
    start_date: date
    end_date: date | None = None

    model_config = {"from_attributes": True}
