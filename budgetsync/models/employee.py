from pydantic import BaseModel, Field
from uuid import UUID
from decimal import Decimal
from budgetsync.models.shared import Money, PartialUpdate, TimestampMixin


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1)
    company_email: str | None = None
    pay_rate: Decimal = Field(gt=0)
    has_company_card: bool = False
    is_active: bool = True


class EmployeeUpdate(PartialUpdate):
    nullable_fields = frozenset({"company_email"})

    name: str | None = Field(default=None, min_length=1)
    company_email: str | None = None
    pay_rate: Decimal | None = Field(default=None, gt=0)
    has_company_card: bool | None = None
    is_active: bool | None = None


class EmployeeResponse(TimestampMixin):
    id: UUID
    name: str
    company_email: str | None = None
    pay_rate: Money
    has_company_card: bool
    is_active: bool
