"""Scan the company Gmail inbox and turn receipt attachments into Receipt rows.

Failures are collected per attachment and summarized on the connection
(``sync_status`` / ``last_error``). The scan never raises: it runs as a
background task after the triggering request has already returned. The one
exception is the worker soft time limit, which propagates so the task can
record the timeout without advancing ``last_sync_at``.
"""
from datetime import date, datetime, timedelta, timezone
from uuid import UUID
from celery.exceptions import SoftTimeLimitExceeded
from loguru import logger
from postgrest.exceptions import APIError
from budgetsync.config import get_settings
from budgetsync.database import get_supabase
from budgetsync.errors import NotFoundError
from budgetsync.ingestors.gmail import GmailIngestor, AttachmentRef
from budgetsync.models.gmail_connection import ScanResult
from budgetsync.processors.storage import discard_receipt_file, receipt_path, upload_receipt_file
from budgetsync.services.gmail_connection import UNIQUE_VIOLATION, update_connection
from budgetsync.services.receipts import analyze_and_record


def _default_since_date(connection: dict) -> date:
    if connection.get("last_sync_at"):
        return datetime.fromisoformat(connection["last_sync_at"]).date()
    settings = get_settings()
    return (datetime.now(timezone.utc) - timedelta(days=settings.gmail_scan_lookback_days)).date()


def _load_connection(connection_id: UUID | str) -> dict:
    db = get_supabase()
    result = (
        db.table("gmail_connections")
        .select("*")
        .eq("id", str(connection_id))
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise NotFoundError("Active Gmail connection not found")
    return result.data[0]


def _already_stored(ref: AttachmentRef) -> bool:
    db = get_supabase()
    existing = (
        db.table("receipts")
        .select("id")
        .eq("gmail_message_id", ref.message_id)
        .eq("gmail_attachment_id", ref.attachment_id)
        .limit(1)
        .execute()
    )
    return bool(existing.data)


def _insert_receipt(connection: dict, project_id: str, ref: AttachmentRef, path: str, size: int) -> dict:
    db = get_supabase()
    result = (
        db.table("receipts")
        .insert(
            {
                "project_id": project_id,
                "storage_path": path,
                "original_filename": ref.filename,
                "mime_type": ref.mime_type,
                "file_size": size,
                "status": "uploaded",
                "source": "gmail",
                "uploaded_by": connection["gmail_email"],
                "gmail_message_id": ref.message_id,
                "gmail_attachment_id": ref.attachment_id,
            }
        )
        .execute()
    )
    return result.data[0]


async def _process_attachment(
    ingestor: GmailIngestor,
    connection: dict,
    project_id: str,
    ref: AttachmentRef,
    result: ScanResult,
) -> None:
    try:
        image_bytes = await ingestor.download_attachment(connection, ref)
        path = receipt_path(project_id, ref.filename, ref.mime_type)
        upload_receipt_file(path, image_bytes, ref.mime_type)
    except SoftTimeLimitExceeded:
        raise
    except Exception as e:
        logger.error(f"Failed to download {ref.filename} (message {ref.message_id}): {e}")
        result.receipts_failed += 1
        result.errors.append(f"Failed to download {ref.filename}: {e}")
        return

    try:
        receipt = _insert_receipt(connection, project_id, ref, path, len(image_bytes))
    except SoftTimeLimitExceeded:
        raise
    except APIError as e:
        discard_receipt_file(path)
        if e.code == UNIQUE_VIOLATION:
            # A concurrent sync stored this attachment first.
            logger.info(f"Attachment {ref.attachment_id} of message {ref.message_id} already stored")
            result.receipts_skipped += 1
            return
        logger.error(f"Failed to record {ref.filename} (message {ref.message_id}): {e.message}")
        result.receipts_failed += 1
        result.errors.append(f"Failed to record {ref.filename}: {e.message}")
        return
    except Exception as e:
        discard_receipt_file(path)
        logger.error(f"Failed to record {ref.filename} (message {ref.message_id}): {e}")
        result.receipts_failed += 1
        result.errors.append(f"Failed to record {ref.filename}: {e}")
        return

    try:
        stored = await analyze_and_record(receipt, image_bytes)
    except SoftTimeLimitExceeded:
        raise
    except Exception as e:
        logger.error(f"Failed to analyze {ref.filename} (receipt {receipt['id']}): {e}")
        result.receipts_failed += 1
        result.errors.append(f"Failed to analyze {ref.filename}: {e}")
        return

    if stored.get("status") == "analyzed":
        result.receipts_processed += 1
    else:
        error = (stored.get("analysis_data") or {}).get("error", "Analysis failed")
        result.receipts_failed += 1
        result.errors.append(f"Failed to analyze {ref.filename}: {error}")


async def scan_gmail_for_receipts(
    connection_id: UUID | str,
    project_id: UUID | str,
    since_date: date | None = None,
    ingestor: GmailIngestor | None = None,
) -> ScanResult:
    """Scan the connected inbox for receipts and file them under a project."""
    result = ScanResult()
    ingestor = ingestor or GmailIngestor()
    project_id = str(project_id)

    try:
        connection = _load_connection(connection_id)
        update_connection(connection["id"], {"sync_status": "syncing", "last_error": None})

        since = since_date or _default_since_date(connection)
        messages = await ingestor.search_receipt_emails(connection, since)
        result.emails_scanned = len(messages)
        result.receipts_found = sum(len(m.attachments) for m in messages)

        for message in messages:
            for ref in message.attachments:
                if _already_stored(ref):
                    result.receipts_skipped += 1
                    continue
                await _process_attachment(ingestor, connection, project_id, ref, result)

        update_connection(
            connection["id"],
            {
                "sync_status": "error" if result.receipts_failed > 0 else "success",
                "last_sync_at": datetime.now(timezone.utc),
                "last_error": "; ".join(result.errors)[:2000] if result.errors else None,
            },
        )

    except SoftTimeLimitExceeded:
        logger.warning(
            f"Gmail scan for connection {connection_id} stopped at the time limit after "
            f"{result.receipts_processed} processed, {result.receipts_failed} failed"
        )
        raise
    except Exception as e:
        logger.error(f"Gmail receipt scan failed for connection {connection_id}: {e}")
        result.errors.append(str(e))
        try:
            update_connection(
                connection_id,
                {"sync_status": "error", "last_error": str(e)[:2000]},
            )
        except Exception as update_error:
            logger.error(
                f"Could not record scan failure on Gmail connection {connection_id}: {update_error}"
            )

    logger.info(
        f"Gmail scan for project {project_id}: {result.emails_scanned} emails, "
        f"{result.receipts_found} attachments, {result.receipts_processed} processed, "
        f"{result.receipts_failed} failed, {result.receipts_skipped} already stored"
    )
    return result
