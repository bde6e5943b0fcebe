from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from uuid import UUID
from loguru import logger
from postgrest.exceptions import APIError
from budgetsync.auth import get_current_user
from budgetsync.config import get_settings
from budgetsync.database import get_supabase
from budgetsync.models.receipt import (
    ReceiptResponse,
    ReceiptLinkCreate,
    ReceiptLinkResponse,
)
from budgetsync.processors.image_processor import detect_format, MEDIA_TYPES
from budgetsync.processors.storage import (
    receipt_path,
    upload_receipt_file,
    download_receipt_file,
    delete_receipt_file,
    discard_receipt_file,
    generate_signed_url,
)
from budgetsync.routers.projects import verify_project_exists
from budgetsync.services.receipts import analyze_and_record, ensure_entry_exists

router = APIRouter(prefix="/api/v1", tags=["receipts"])


def _verify_receipt_exists(receipt_id: UUID) -> dict:
    db = get_supabase()
    result = (
        db.table("receipts")
        .select("*")
        .eq("id", str(receipt_id))
        .maybe_single()
        .execute()
    )
    if not result or not result.data:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return result.data


@router.post("/receipts/upload", response_model=ReceiptResponse, status_code=201)
async def upload_receipt(
    project_id: UUID = Form(...),
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user),
):
    """Store a receipt image. Analysis is a separate, explicit step."""
    settings = get_settings()
    verify_project_exists(project_id)

    file_bytes = await file.read()
    max_bytes = settings.max_receipt_size_mb * 1024 * 1024
    if len(file_bytes) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Receipt image exceeds {settings.max_receipt_size_mb} MB",
        )
    if not file_bytes:
        raise HTTPException(status_code=400, detail="Empty file")

    filename = file.filename or "receipt"
    image_format = detect_format(filename, file_bytes)
    if image_format not in MEDIA_TYPES:
        raise HTTPException(status_code=400, detail="Only JPEG, PNG and WebP images are accepted")
    mime_type = MEDIA_TYPES[image_format]

    path = receipt_path(project_id, filename, mime_type)
    upload_receipt_file(path, file_bytes, mime_type)

    db = get_supabase()
    try:
        result = db.table("receipts").insert({
            "project_id": str(project_id),
            "storage_path": path,
            "original_filename": filename,
            "mime_type": mime_type,
            "file_size": len(file_bytes),
            "status": "uploaded",
            "source": "upload",
            "uploaded_by": user["email"],
        }).execute()
    except APIError:
        discard_receipt_file(path)
        raise
    return result.data[0]


@router.get("/projects/{project_id}/receipts", response_model=list[ReceiptResponse])
async def list_receipts(
    project_id: UUID,
    user: dict = Depends(get_current_user),
):
    verify_project_exists(project_id)
    db = get_supabase()
    result = (
        db.table("receipts")
        .select("*")
        .eq("project_id", str(project_id))
        .order("created_at", desc=True)
        .execute()
    )
    return result.data


@router.get("/receipts/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: UUID,
    user: dict = Depends(get_current_user),
):
    return _verify_receipt_exists(receipt_id)


@router.get("/receipts/{receipt_id}/url")
async def get_receipt_url(
    receipt_id: UUID,
    user: dict = Depends(get_current_user),
):
    """Short-lived signed URL for displaying the image."""
    receipt = _verify_receipt_exists(receipt_id)
    return {"url": generate_signed_url(receipt["storage_path"])}


@router.delete("/receipts/{receipt_id}", status_code=204)
async def delete_receipt(
    receipt_id: UUID,
    user: dict = Depends(get_current_user),
):
    receipt = _verify_receipt_exists(receipt_id)
    db = get_supabase()
    db.table("receipts").delete().eq("id", str(receipt_id)).execute()
    delete_receipt_file(receipt["storage_path"])
    logger.info(f"Receipt {receipt_id} deleted by {user['email']}")


@router.post("/receipts/{receipt_id}/analyze", response_model=ReceiptResponse)
async def analyze_receipt(
    receipt_id: UUID,
    user: dict = Depends(get_current_user),
):
    """Run document analysis now; a failed analysis is stored on the receipt."""
    receipt = _verify_receipt_exists(receipt_id)
    image_bytes = download_receipt_file(receipt["storage_path"])
    return await analyze_and_record(receipt, image_bytes)


# ── Links to cost entries ──

@router.post("/receipts/{receipt_id}/links", response_model=ReceiptLinkResponse, status_code=201)
async def link_receipt(
    receipt_id: UUID,
    body: ReceiptLinkCreate,
    user: dict = Depends(get_current_user),
):
    receipt = _verify_receipt_exists(receipt_id)
    ensure_entry_exists(body.entry_type, body.entry_id, receipt["project_id"])

    db = get_supabase()
    result = db.table("receipt_links").insert({
        "receipt_id": str(receipt_id),
        "entry_type": body.entry_type.value,
        "entry_id": str(body.entry_id),
    }).execute()
    return result.data[0]


@router.get("/receipts/{receipt_id}/links", response_model=list[ReceiptLinkResponse])
async def list_receipt_links(
    receipt_id: UUID,
    user: dict = Depends(get_current_user),
):
    _verify_receipt_exists(receipt_id)
    db = get_supabase()
    result = (
        db.table("receipt_links")
        .select("*")
        .eq("receipt_id", str(receipt_id))
        .order("created_at")
        .execute()
    )
    return result.data


@router.delete("/receipt-links/{link_id}", status_code=204)
async def delete_receipt_link(
    link_id: UUID,
    user: dict = Depends(get_current_user),
):
    db = get_supabase()
    result = db.table("receipt_links").delete().eq("id", str(link_id)).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Receipt link not found")
