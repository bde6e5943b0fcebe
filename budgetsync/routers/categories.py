from fastapi import APIRouter, Depends, HTTPException
from uuid import UUID
from budgetsync.auth import get_current_user
from budgetsync.database import get_supabase
from budgetsync.models.category import CategoryCreate, CategoryUpdate, CategoryResponse
from budgetsync.models.shared import to_db_payload
from budgetsync.routers.projects import verify_project_exists

router = APIRouter(prefix="/api/v1", tags=["categories"])


@router.get("/projects/{project_id}/categories", response_model=list[CategoryResponse])
async def list_categories(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    result = (
        db.table("categories")
        .select("*")
        .eq("project_id", str(project_id))
        .order("name")
        .execute()
    )
    return result.data


@router.post("/projects/{project_id}/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    project_id: UUID,
    body: CategoryCreate,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    data = to_db_payload(body)
    data["project_id"] = str(project_id)
    result = db.table("categories").insert(data).execute()
    return result.data[0]


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: UUID,
    body: CategoryUpdate,
    user: dict = Depends(get_current_user),
):
    data = to_db_payload(body)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    db = get_supabase()
    result = db.table("categories").update(data).eq("id", str(category_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Category not found")
    return result.data[0]


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(
    category_id: UUID,
    user: dict = Depends(get_current_user),
):
    """Tagged entries survive with category_id set to NULL (ON DELETE SET NULL)."""
    db = get_supabase()
    result = db.table("categories").delete().eq("id", str(category_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Category not found")
