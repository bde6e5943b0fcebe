"""Request/response models for the dated cost entries of a project."""
from pydantic import BaseModel, Field
import datetime as dt
from uuid import UUID
from decimal import Decimal
from budgetsync.models.shared import Money, PartialUpdate, TimestampMixin


# ── Timesheets ──

class TimesheetCreate(BaseModel):
    project_id: UUID
    employee_name: str = Field(min_length=1)
    employee_id: UUID | None = None
    category_id: UUID | None = None
    hours: Decimal = Field(gt=0)
    pay_rate: Decimal = Field(gt=0)
    date: dt.date
    notes: str | None = None


class TimesheetUpdate(PartialUpdate):
    nullable_fields = frozenset({"employee_id", "category_id", "notes"})

    employee_name: str | None = Field(default=None, min_length=1)
    employee_id: UUID | None = None
    category_id: UUID | None = None
    hours: Decimal | None = Field(default=None, gt=0)
    pay_rate: Decimal | None = Field(default=None, gt=0)
    date: dt.date | None = None
    notes: str | None = None


class TimesheetResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    employee_name: str
    employee_id: UUID | None = None
    category_id: UUID | None = None
    hours: Money
    pay_rate: Money
    date: dt.date
    notes: str | None = None


# ── Equipment ──

class EquipmentLogCreate(BaseModel):
    project_id: UUID
    equipment_name: str = Field(min_length=1)
    category_id: UUID | None = None
    hours: Decimal = Field(gt=0)
    fuel_cost: Decimal = Field(default=Decimal("0"), ge=0)
    rental_cost: Decimal = Field(default=Decimal("0"), ge=0)
    date: dt.date
    notes: str | None = None


class EquipmentLogUpdate(PartialUpdate):
    nullable_fields = frozenset({"category_id", "notes"})

    equipment_name: str | None = Field(default=None, min_length=1)
    category_id: UUID | None = None
    hours: Decimal | None = Field(default=None, gt=0)
    fuel_cost: Decimal | None = Field(default=None, ge=0)
    rental_cost: Decimal | None = Field(default=None, ge=0)
    date: dt.date | None = None
    notes: str | None = None


class EquipmentLogResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    equipment_name: str
    category_id: UUID | None = None
    hours: Money
    fuel_cost: Money
    rental_cost: Money
    date: dt.date
    notes: str | None = None


# ── Subcontractors ──

class SubcontractorEntryCreate(BaseModel):
    project_id: UUID
    contractor_name: str = Field(min_length=1)
    category_id: UUID | None = None
    cost: Decimal = Field(gt=0)
    date: dt.date
    description: str | None = None


class SubcontractorEntryUpdate(PartialUpdate):
    nullable_fields = frozenset({"category_id", "description"})

    contractor_name: str | None = Field(default=None, min_length=1)
    category_id: UUID | None = None
    cost: Decimal | None = Field(default=None, gt=0)
    date: dt.date | None = None
    description: str | None = None


class SubcontractorEntryResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    contractor_name: str
    category_id: UUID | None = None
    cost: Money
    date: dt.date
    description: str | None = None


# ── Overhead ──

class OverheadEntryCreate(BaseModel):
    project_id: UUID
    description: str = Field(min_length=1)
    category_id: UUID | None = None
    cost: Decimal = Field(gt=0)
    date: dt.date


class OverheadEntryUpdate(PartialUpdate):
    nullable_fields = frozenset({"category_id"})

    description: str | None = Field(default=None, min_length=1)
    category_id: UUID | None = None
    cost: Decimal | None = Field(default=None, gt=0)
    date: dt.date | None = None


class OverheadEntryResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    description: str
    category_id: UUID | None = None
    cost: Money
    date: dt.date
