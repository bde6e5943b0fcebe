from fastapi import APIRouter, Depends, HTTPException
from uuid import UUID
from loguru import logger
from budgetsync.auth import get_current_user
from budgetsync.database import get_supabase
from budgetsync.models.progress_report import (
    ProgressReportCreate,
    ProgressReportResponse,
    MaterialCreate,
    MaterialResponse,
)
from budgetsync.models.shared import to_db_payload
from budgetsync.routers.projects import verify_project_exists

router = APIRouter(prefix="/api/v1", tags=["progress-reports"])


def _verify_report_exists(report_id: UUID) -> dict:
    db = get_supabase()
    result = (
        db.table("progress_reports")
        .select("*")
        .eq("id", str(report_id))
        .maybe_single()
        .execute()
    )
    if not result or not result.data:
        raise HTTPException(status_code=404, detail="Progress report not found")
    return result.data


@router.get("/projects/{project_id}/progress-reports", response_model=list[ProgressReportResponse])
async def list_progress_reports(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    result = (
        db.table("progress_reports")
        .select("*, materials(*)")
        .eq("project_id", str(project_id))
        .order("date", desc=True)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data


@router.post("/progress-reports", response_model=ProgressReportResponse, status_code=201)
async def create_progress_report(
    body: ProgressReportCreate,
    user: dict = Depends(get_current_user),
):
    """Create a report and its materials in a single transaction."""
    verify_project_exists(body.project_id)
    db = get_supabase()

    payload = to_db_payload(body)
    materials = payload.pop("materials", [])

    result = db.rpc(
        "create_progress_report_with_materials",
        {"p_report": payload, "p_materials": materials},
    ).execute()
    data = result.data
    report = data[0] if isinstance(data, list) else data

    stored = (
        db.table("materials")
        .select("*")
        .eq("progress_report_id", str(report["id"]))
        .execute()
    )
    logger.info(
        f"Progress report {report['id']} ({report['percent_complete']}%) "
        f"with {len(stored.data)} materials for project {body.project_id}"
    )
    return {**report, "materials": stored.data}


@router.delete("/progress-reports/{report_id}", status_code=204)
async def delete_progress_report(
    report_id: UUID,
    user: dict = Depends(get_current_user),
):
    _verify_report_exists(report_id)
    db = get_supabase()
    # Materials cascade with the report
    db.table("progress_reports").delete().eq("id", str(report_id)).execute()


@router.get("/progress-reports/{report_id}/materials", response_model=list[MaterialResponse])
async def list_report_materials(
    report_id: UUID,
    user: dict = Depends(get_current_user),
):
    _verify_report_exists(report_id)
    db = get_supabase()
    result = (
        db.table("materials")
        .select("*")
        .eq("progress_report_id", str(report_id))
        .execute()
    )
    return result.data


@router.post("/materials", response_model=MaterialResponse, status_code=201)
async def create_material(
    body: MaterialCreate,
    user: dict = Depends(get_current_user),
):
    _verify_report_exists(body.progress_report_id)
    db = get_supabase()
    result = db.table("materials").insert(to_db_payload(body)).execute()
    return result.data[0]


@router.delete("/materials/{material_id}", status_code=204)
async def delete_material(
    material_id: UUID,
    user: dict = Depends(get_current_user),
):
    db = get_supabase()
    result = db.table("materials").delete().eq("id", str(material_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Material not found")
