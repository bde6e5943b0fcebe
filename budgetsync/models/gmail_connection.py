from pydantic import BaseModel, field_validator
import datetime as dt
from uuid import UUID
from typing import Literal
from budgetsync.models.shared import TimestampMixin

SyncStatus = Literal["pending", "syncing", "success", "error"]


class GmailConnectionCreate(BaseModel):
    gmail_email: str
    description: str | None = None

    @field_validator("gmail_email")
    @classmethod
    def _looks_like_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Valid email address required")
        return v


class GmailConnectionResponse(TimestampMixin):
    """Public view of the connection; OAuth tokens are never returned."""
    id: UUID
    gmail_email: str
    description: str | None = None
    is_active: bool
    sync_status: SyncStatus
    last_sync_at: dt.datetime | None = None
    last_error: str | None = None


class GmailSyncRequest(BaseModel):
    project_id: UUID
    since_date: dt.date | None = None


class ScanResult(BaseModel):
    emails_scanned: int = 0
    receipts_found: int = 0
    receipts_processed: int = 0
    receipts_failed: int = 0
    receipts_skipped: int = 0
    errors: list[str] = []
