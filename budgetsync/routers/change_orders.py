from fastapi import APIRouter, Depends, HTTPException
from uuid import UUID
from loguru import logger
from budgetsync.auth import get_current_user
from budgetsync.database import get_supabase
from budgetsync.models.change_order import (
    ChangeOrderCreate,
    ChangeOrderUpdate,
    ChangeOrderResponse,
)
from budgetsync.models.shared import to_db_payload
from budgetsync.routers.projects import verify_project_exists

router = APIRouter(prefix="/api/v1", tags=["change-orders"])


@router.get("/projects/{project_id}/change-orders", response_model=list[ChangeOrderResponse])
async def list_change_orders(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    result = (
        db.table("change_orders")
        .select("*")
        .eq("project_id", str(project_id))
        .order("date", desc=True)
        .execute()
    )
    return result.data


@router.post("/projects/{project_id}/change-orders", response_model=ChangeOrderResponse, status_code=201)
async def create_change_order(
    project_id: UUID,
    body: ChangeOrderCreate,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    data = to_db_payload(body)
    data["project_id"] = str(project_id)
    result = db.table("change_orders").insert(data).execute()
    return result.data[0]


@router.patch("/change-orders/{change_order_id}", response_model=ChangeOrderResponse)
async def update_change_order(
    change_order_id: UUID,
    body: ChangeOrderUpdate,
    user: dict = Depends(get_current_user),
):
    data = to_db_payload(body)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    db = get_supabase()
    result = db.table("change_orders").update(data).eq("id", str(change_order_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Change order not found")

    if "status" in data:
        logger.info(f"Change order {change_order_id} marked {data['status']} by {user['email']}")
    return result.data[0]


@router.delete("/change-orders/{change_order_id}", status_code=204)
async def delete_change_order(
    change_order_id: UUID,
    user: dict = Depends(get_current_user),
):
    db = get_supabase()
    result = db.table("change_orders").delete().eq("id", str(change_order_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Change order not found")
