import asyncio
from datetime import date
from celery.exceptions import SoftTimeLimitExceeded
from loguru import logger
from budgetsync.workers.celery_app import celery_app
from budgetsync.services.gmail_connection import update_connection
from budgetsync.services.receipt_scanner import scan_gmail_for_receipts


def _run_async(coro):
    """Run async code from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="budgetsync.workers.receipt_sync.sync_gmail_receipts")
def sync_gmail_receipts(connection_id: str, project_id: str, since_date: str | None = None) -> dict:
    """Background scan of the company inbox; fire-and-forget from the API."""
    since = date.fromisoformat(since_date) if since_date else None

    try:
        result = _run_async(scan_gmail_for_receipts(connection_id, project_id, since))
    except SoftTimeLimitExceeded:
        logger.error(f"Gmail receipt sync for connection {connection_id} hit the time limit")
        update_connection(
            connection_id,
            {
                "sync_status": "error",
                "last_error": "Sync timed out before finishing",
            },
        )
        return {"status": "timeout"}

    return result.model_dump()
