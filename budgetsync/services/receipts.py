"""Receipt bookkeeping shared by the upload API and the Gmail scanner."""
from datetime import datetime, timezone
from uuid import UUID
from loguru import logger
from budgetsync.agents.receipt_analyzer import analyze_receipt
from budgetsync.database import get_supabase
from budgetsync.errors import NotFoundError, ReceiptAnalysisError
from budgetsync.models.receipt import EntryType


async def analyze_and_record(receipt: dict, image_bytes: bytes) -> dict:
    """Run document analysis on a stored receipt and persist the outcome.

    Analysis failures are written onto the receipt (status ``failed`` and the
    error text in ``analysis_data``) rather than raised.
    """
    db = get_supabase()
    now = datetime.now(timezone.utc).isoformat()

    try:
        analysis, metadata = await analyze_receipt(
            image_bytes, receipt.get("original_filename") or "receipt.jpg"
        )
        update = {
            "status": "analyzed",
            "analysis_data": {**analysis.model_dump(mode="json"), "metadata": metadata},
            "analyzed_at": now,
        }
    except ReceiptAnalysisError as e:
        logger.warning(f"Receipt {receipt['id']} analysis failed: {e.detail}")
        update = {
            "status": "failed",
            "analysis_data": {"error": e.detail},
            "analyzed_at": now,
        }

    result = (
        db.table("receipts")
        .update(update)
        .eq("id", str(receipt["id"]))
        .execute()
    )
    return result.data[0] if result.data else {**receipt, **update}


def ensure_entry_exists(entry_type: EntryType, entry_id: UUID, project_id: UUID | str) -> dict:
    """Check that a receipt link target exists and belongs to the receipt's project."""
    db = get_supabase()

    if entry_type is EntryType.MATERIAL:
        query = (
            db.table("materials")
            .select("id, progress_reports!inner(project_id)")
            .eq("id", str(entry_id))
            .eq("progress_reports.project_id", str(project_id))
        )
    else:
        query = (
            db.table(entry_type.table)
            .select("id")
            .eq("id", str(entry_id))
            .eq("project_id", str(project_id))
        )

    result = query.limit(1).execute()
    if not result.data:
        raise NotFoundError(f"No {entry_type.value} {entry_id} in this project")
    return result.data[0]
