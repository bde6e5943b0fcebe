"""CRUD for the four dated cost entry kinds of a project.

Each kind lives in its own table with the same shape of endpoints, so the
routes are registered from one table of specs instead of four copies.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from uuid import UUID
from budgetsync.auth import get_current_user
from budgetsync.database import get_supabase
from budgetsync.models.cost_entry import (
    TimesheetCreate,
    TimesheetUpdate,
    TimesheetResponse,
    EquipmentLogCreate,
    EquipmentLogUpdate,
    EquipmentLogResponse,
    SubcontractorEntryCreate,
    SubcontractorEntryUpdate,
    SubcontractorEntryResponse,
    OverheadEntryCreate,
    OverheadEntryUpdate,
    OverheadEntryResponse,
)
from budgetsync.models.shared import to_db_payload
from budgetsync.routers.projects import verify_project_exists

router = APIRouter(prefix="/api/v1", tags=["cost-entries"])


def _register(
    path: str,
    table: str,
    label: str,
    create_model: type[BaseModel],
    update_model: type[BaseModel],
    response_model: type[BaseModel],
):
    @router.get(f"/projects/{{project_id}}/{path}", response_model=list[response_model], name=f"list_{table}")
    async def list_entries(project_id: UUID, user: dict = Depends(get_current_user)):
        verify_project_exists(project_id)
        db = get_supabase()
        result = (
            db.table(table)
            .select("*")
            .eq("project_id", str(project_id))
            .order("date", desc=True)
            .execute()
        )
        return result.data

    @router.post(f"/{path}", response_model=response_model, status_code=201, name=f"create_{table}")
    async def create_entry(body: create_model, user: dict = Depends(get_current_user)):
        verify_project_exists(body.project_id)
        db = get_supabase()
        result = db.table(table).insert(to_db_payload(body)).execute()
        return result.data[0]

    @router.patch(f"/{path}/{{entry_id}}", response_model=response_model, name=f"update_{table}")
    async def update_entry(entry_id: UUID, body: update_model, user: dict = Depends(get_current_user)):
        data = to_db_payload(body, partial=True)
        if not data:
            raise HTTPException(status_code=400, detail="No fields to update")

        db = get_supabase()
        result = db.table(table).update(data).eq("id", str(entry_id)).execute()
        if not result.data:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return result.data[0]

    @router.delete(f"/{path}/{{entry_id}}", status_code=204, name=f"delete_{table}")
    async def delete_entry(entry_id: UUID, user: dict = Depends(get_current_user)):
        db = get_supabase()
        result = db.table(table).delete().eq("id", str(entry_id)).execute()
        if not result.data:
            raise HTTPException(status_code=404, detail=f"{label} not found")


_register("timesheets", "timesheets", "Timesheet",
          TimesheetCreate, TimesheetUpdate, TimesheetResponse)
_register("equipment", "equipment_logs", "Equipment log",
          EquipmentLogCreate, EquipmentLogUpdate, EquipmentLogResponse)
_register("subcontractors", "subcontractor_entries", "Subcontractor entry",
          SubcontractorEntryCreate, SubcontractorEntryUpdate, SubcontractorEntryResponse)
_register("overhead", "overhead_entries", "Overhead entry",
          OverheadEntryCreate, OverheadEntryUpdate, OverheadEntryResponse)
