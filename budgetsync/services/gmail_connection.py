"""Company inbox connection: at most one active row at any time.

Creation goes through the ``create_active_gmail_connection`` Postgres
function, which serializes creators on a transaction-scoped advisory lock
before deactivating the old row and inserting the new one. The lock is
released on commit, rollback or disconnect, so a crashed request never
leaves it held. The partial unique index on ``is_active`` backs this up.
"""
import asyncio
from datetime import datetime
from uuid import UUID
from loguru import logger
from postgrest.exceptions import APIError
from budgetsync.config import get_settings
from budgetsync.database import get_supabase, execute_async
from budgetsync.errors import (
    NotFoundError,
    ConcurrencyConflictError,
    LockUnavailableError,
)

# Postgres SQLSTATEs surfaced by PostgREST
LOCK_NOT_AVAILABLE = "55P03"
UNIQUE_VIOLATION = "23505"


def get_active_connection() -> dict | None:
    """Return the active connection row, or None. Read-only, no locking."""
    db = get_supabase()
    result = (
        db.table("gmail_connections")
        .select("*")
        .eq("is_active", True)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def create_active_connection(
    gmail_email: str,
    description: str | None = None,
    access_token: str | None = None,
    refresh_token: str | None = None,
    token_expires_at: datetime | None = None,
) -> dict:
    """Replace any active connection with a new one, atomically.

    Retries only while the advisory lock is contended, then gives up with
    LockUnavailableError. A unique-index violation means the invariant was
    about to break and is reported as a conflict, never retried.
    """
    settings = get_settings()
    db = get_supabase()
    params = {
        "p_gmail_email": gmail_email,
        "p_description": description,
        "p_access_token": access_token,
        "p_refresh_token": refresh_token,
        "p_token_expires_at": token_expires_at.isoformat() if token_expires_at else None,
    }
    attempts = settings.gmail_lock_max_retries + 1

    for attempt in range(1, attempts + 1):
        try:
            result = await execute_async(
                db.rpc("create_active_gmail_connection", params)
            )
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning(f"Gmail connection for {gmail_email} lost a concurrent activation: {e.message}")
                raise ConcurrencyConflictError(
                    "Another Gmail connection was activated at the same time"
                ) from e
            if e.code != LOCK_NOT_AVAILABLE:
                raise
            logger.warning(
                f"Gmail connection lock busy (attempt {attempt}/{attempts}) "
                f"for {gmail_email}"
            )
            if attempt < attempts:
                await asyncio.sleep(settings.gmail_lock_retry_delay_seconds * attempt)
            continue

        data = result.data
        row = data[0] if isinstance(data, list) else data
        logger.info(f"Gmail connection {row['id']} activated for {gmail_email}")
        return row

    raise LockUnavailableError(
        "Gmail connection is being changed by another request, try again shortly"
    )


def update_connection(connection_id: UUID | str, fields: dict) -> dict:
    """Apply a partial update (sync status, errors, tokens) to one row."""
    payload = {
        k: (v.isoformat() if isinstance(v, datetime) else v)
        for k, v in fields.items()
    }
    db = get_supabase()
    result = (
        db.table("gmail_connections")
        .update(payload)
        .eq("id", str(connection_id))
        .execute()
    )
    if not result.data:
        raise NotFoundError("Gmail connection not found")
    return result.data[0]


def deactivate_connection(connection_id: UUID | str) -> dict:
    row = update_connection(connection_id, {"is_active": False})
    logger.info(f"Gmail connection {connection_id} deactivated")
    return row
