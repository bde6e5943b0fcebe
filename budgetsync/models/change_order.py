from pydantic import BaseModel, Field
import datetime as dt
from uuid import UUID
from decimal import Decimal
from typing import Literal
from budgetsync.models.shared import Money, TimestampMixin

ChangeOrderStatus = Literal["Pending", "Approved", "Rejected"]


class ChangeOrderCreate(BaseModel):
    change_order_number: str = Field(min_length=1)
    description: str = Field(min_length=1)
    amount: Decimal = Decimal("0")  # negative for credits
    status: ChangeOrderStatus = "Pending"
    date: dt.date


class ChangeOrderUpdate(BaseModel):
    change_order_number: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, min_length=1)
    amount: Decimal | None = None
    status: ChangeOrderStatus | None = None
    date: dt.date | None = None


class ChangeOrderResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    change_order_number: str
    description: str
    amount: Money
    status: ChangeOrderStatus
    date: dt.date
