"""Tests for Pydantic request/response models."""
import os
import json
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4
from pydantic import ValidationError

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

from budgetsync.models.project import ProjectCreate
from budgetsync.models.cost_entry import (
    TimesheetCreate,
    TimesheetUpdate,
    EquipmentLogCreate,
    EquipmentLogUpdate,
    SubcontractorEntryCreate,
    OverheadEntryCreate,
)
from budgetsync.models.progress_report import ProgressReportCreate, MaterialInput
from budgetsync.models.category import CategoryCreate
from budgetsync.models.employee import EmployeeUpdate
from budgetsync.models.change_order import ChangeOrderCreate
from budgetsync.models.gmail_connection import GmailConnectionCreate, ScanResult
from budgetsync.models.receipt import EntryType, ReceiptLinkCreate
from budgetsync.models.budget import BudgetStats
from budgetsync.models.shared import to_db_payload


def _project(**overrides) -> dict:
    data = {
        "name": "Riverside Duplex",
        "total_budget": "100000",
        "labor_budget": "40000",
        "materials_budget": "30000",
        "equipment_budget": "10000",
        "subcontractors_budget": "15000",
        "overhead_budget": "5000",
        "start_date": "2026-03-01",
        "end_date": "2026-09-30",
    }
    data.update(overrides)
    return data


class TestProjectCreate:
    def test_valid(self):
        p = ProjectCreate(**_project())
        assert p.total_budget == Decimal("100000")
        assert p.start_date == date(2026, 3, 1)

    def test_zero_total_budget_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(**_project(total_budget="0"))

    def test_negative_category_budget_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(**_project(labor_budget="-1"))

    def test_zero_category_budget_allowed(self):
        p = ProjectCreate(**_project(overhead_budget="0"))
        assert p.overhead_budget == 0

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(**_project(end_date="2026-02-01"))

    def test_end_date_optional(self):
        p = ProjectCreate(**_project(end_date=None))
        assert p.end_date is None

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            ProjectCreate(**_project(name=""))


class TestCostEntries:
    def test_timesheet_requires_positive_hours(self):
        with pytest.raises(ValidationError):
            TimesheetCreate(
                project_id=uuid4(), employee_name="Ana", hours=0, pay_rate=25, date="2026-03-02"
            )

    def test_timesheet_requires_positive_pay_rate(self):
        with pytest.raises(ValidationError):
            TimesheetCreate(
                project_id=uuid4(), employee_name="Ana", hours=8, pay_rate=0, date="2026-03-02"
            )

    def test_equipment_costs_default_to_zero(self):
        e = EquipmentLogCreate(
            project_id=uuid4(), equipment_name="Skid steer", hours=4, date="2026-03-02"
        )
        assert e.fuel_cost == 0
        assert e.rental_cost == 0

    def test_equipment_negative_fuel_rejected(self):
        with pytest.raises(ValidationError):
            EquipmentLogCreate(
                project_id=uuid4(), equipment_name="Skid steer", hours=4,
                fuel_cost=-5, date="2026-03-02",
            )

    def test_subcontractor_cost_positive(self):
        with pytest.raises(ValidationError):
            SubcontractorEntryCreate(
                project_id=uuid4(), contractor_name="Sparks LLC", cost=0, date="2026-03-02"
            )

    def test_overhead_cost_positive(self):
        with pytest.raises(ValidationError):
            OverheadEntryCreate(
                project_id=uuid4(), description="Permit", cost="-10", date="2026-03-02"
            )

    def test_partial_update_keeps_explicit_null_category(self):
        body = TimesheetUpdate(category_id=None, hours=6)
        payload = to_db_payload(body, partial=True)
        assert payload == {"category_id": None, "hours": "6"}

    def test_partial_update_rejects_null_for_required_column(self):
        with pytest.raises(ValidationError, match="hours cannot be null"):
            TimesheetUpdate(hours=None)
        with pytest.raises(ValidationError, match="fuel_cost, rental_cost cannot be null"):
            EquipmentLogUpdate(rental_cost=None, fuel_cost=None)

    def test_partial_update_allows_clearing_optional_columns(self):
        body = TimesheetUpdate(employee_id=None, notes=None)
        assert to_db_payload(body, partial=True) == {"employee_id": None, "notes": None}
        assert to_db_payload(EmployeeUpdate(company_email=None), partial=True) == {"company_email": None}

    def test_create_payload_is_json_safe(self):
        body = TimesheetCreate(
            project_id=uuid4(), employee_name="Ana", hours="7.5", pay_rate="32.10", date="2026-03-02"
        )
        payload = to_db_payload(body)
        json.dumps(payload)
        assert payload["hours"] == "7.5"
        assert payload["date"] == "2026-03-02"
        assert "category_id" not in payload


class TestProgressReport:
    def test_percent_complete_bounds(self):
        with pytest.raises(ValidationError):
            ProgressReportCreate(project_id=uuid4(), percent_complete=101, date="2026-03-02")
        with pytest.raises(ValidationError):
            ProgressReportCreate(project_id=uuid4(), percent_complete=-1, date="2026-03-02")

    def test_nested_materials(self):
        report = ProgressReportCreate(
            project_id=uuid4(),
            percent_complete=20,
            date="2026-03-02",
            materials=[{"item_name": "Rebar", "quantity": 40, "unit": "pcs", "cost": "380"}],
        )
        assert len(report.materials) == 1
        assert report.materials[0].cost == Decimal("380")

    def test_material_quantity_positive(self):
        with pytest.raises(ValidationError):
            MaterialInput(item_name="Rebar", quantity=0, unit="pcs", cost=10)


class TestCategoryAndChangeOrder:
    def test_category_default_color(self):
        assert CategoryCreate(name="Framing").color == "#3b82f6"

    def test_category_bad_color(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="Framing", color="blue")

    def test_change_order_status(self):
        co = ChangeOrderCreate(change_order_number="CO-1", description="Extra outlet", amount=250, date="2026-03-05")
        assert co.status == "Pending"
        with pytest.raises(ValidationError):
            ChangeOrderCreate(
                change_order_number="CO-2", description="x", amount=1, status="Done", date="2026-03-05"
            )


class TestGmailConnection:
    def test_email_normalized(self):
        c = GmailConnectionCreate(gmail_email="  Receipts@Company.COM ")
        assert c.gmail_email == "receipts@company.com"

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            GmailConnectionCreate(gmail_email="not-an-email")

    def test_scan_result_defaults(self):
        r = ScanResult()
        assert r.receipts_processed == 0
        assert r.errors == []


class TestReceiptLinks:
    def test_entry_type_tables(self):
        assert EntryType.TIMESHEET.table == "timesheets"
        assert EntryType.MATERIAL.table == "materials"
        assert EntryType("overhead_entry").table == "overhead_entries"

    def test_unknown_entry_type_rejected(self):
        with pytest.raises(ValidationError):
            ReceiptLinkCreate(entry_type="invoice", entry_id=uuid4())


class TestBudgetStatsSerialization:
    def test_money_serialized_as_numbers(self):
        stats = BudgetStats(
            total_budget=Decimal("100000"),
            total_spent=Decimal("200.00"),
            spent_today=Decimal("0"),
            remaining=Decimal("99800.00"),
            percent_used=Decimal("0.20"),
            percent_complete=0,
            labor_spent=Decimal("200.00"),
            materials_spent=Decimal("0"),
            equipment_spent=Decimal("0"),
            subcontractors_spent=Decimal("0"),
            overhead_spent=Decimal("0"),
            projected_final_cost=Decimal("100000"),
            variance=Decimal("0"),
            daily_burn_rate=Decimal("200.00"),
            days_remaining=10,
            category_breakdown=[],
            uncategorized_total=Decimal("200.00"),
        )
        data = json.loads(stats.model_dump_json())
        assert data["total_spent"] == 200.0
        assert data["percent_used"] == 0.2
        assert isinstance(data["remaining"], float)
