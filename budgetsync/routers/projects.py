from fastapi import APIRouter, Depends, HTTPException, Response
from uuid import UUID
from loguru import logger
from budgetsync.auth import get_current_user
from budgetsync.database import get_supabase
from budgetsync.models.budget import BudgetStats
from budgetsync.models.project import ProjectCreate, ProjectResponse
from budgetsync.models.shared import to_db_payload
from budgetsync.services.budget_stats import get_budget_stats
from budgetsync.services.export import build_project_csv, load_export_rows, export_filename

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


def verify_project_exists(project_id: UUID) -> dict:
    """Fetch a project or 404."""
    db = get_supabase()
    result = (
        db.table("projects")
        .select("*")
        .eq("id", str(project_id))
        .maybe_single()
        .execute()
    )
    if not result or not result.data:
        raise HTTPException(status_code=404, detail="Project not found")
    return result.data


@router.get("", response_model=list[ProjectResponse])
async def list_projects(user: dict = Depends(get_current_user)):
    db = get_supabase()
    result = (
        db.table("projects")
        .select("*")
        .order("created_at", desc=True)
        .execute()
    )
    return result.data


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: ProjectCreate,
    user: dict = Depends(get_current_user),
):
    db = get_supabase()
    result = db.table("projects").insert(to_db_payload(body)).execute()
    logger.info(f"Project {result.data[0]['id']} created by {user['email']}")
    return result.data[0]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    return verify_project_exists(project_id)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    # Entries, reports, categories and receipts go with it (ON DELETE CASCADE)
    db.table("projects").delete().eq("id", str(project_id)).execute()
    logger.info(f"Project {project_id} deleted by {user['email']}")


@router.get("/{project_id}/stats", response_model=BudgetStats)
async def project_stats(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    """Dashboard figures; NotFoundError becomes a 404 in the app handler."""
    return await get_budget_stats(project_id)


@router.get("/{project_id}/export")
async def export_project(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    """Download every cost entry of the project as one CSV report."""
    project = verify_project_exists(project_id)
    rows = await load_export_rows(project_id)
    stats = await get_budget_stats(project_id)

    content = build_project_csv(project, stats, **rows)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(project)}"'},
    )
