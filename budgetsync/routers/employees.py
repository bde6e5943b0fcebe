from fastapi import APIRouter, Depends, HTTPException
from uuid import UUID
from budgetsync.auth import get_current_user
from budgetsync.database import get_supabase
from budgetsync.models.employee import EmployeeCreate, EmployeeUpdate, EmployeeResponse
from budgetsync.models.shared import to_db_payload

router = APIRouter(prefix="/api/v1/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeResponse])
async def list_employees(user: dict = Depends(get_current_user)):
    db = get_supabase()
    result = db.table("employees").select("*").order("name").execute()
    return result.data


@router.get("/active", response_model=list[EmployeeResponse])
async def list_active_employees(user: dict = Depends(get_current_user)):
    """Employees offered in the timesheet picker."""
    db = get_supabase()
    result = (
        db.table("employees")
        .select("*")
        .eq("is_active", True)
        .order("name")
        .execute()
    )
    return result.data


@router.post("", response_model=EmployeeResponse, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    user: dict = Depends(get_current_user),
):
    db = get_supabase()
    result = db.table("employees").insert(to_db_payload(body)).execute()
    return result.data[0]


@router.patch("/{employee_id}", response_model=EmployeeResponse)
async def update_employee(
    employee_id: UUID,
    body: EmployeeUpdate,
    user: dict = Depends(get_current_user),
):
    data = to_db_payload(body, partial=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    db = get_supabase()
    result = db.table("employees").update(data).eq("id", str(employee_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Employee not found")
    return result.data[0]


@router.delete("/{employee_id}", status_code=204)
async def delete_employee(
    employee_id: UUID,
    user: dict = Depends(get_current_user),
):
    # Timesheets keep employee_name; employee_id is set to NULL
    db = get_supabase()
    result = db.table("employees").delete().eq("id", str(employee_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Employee not found")
