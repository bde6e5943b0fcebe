from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID
from typing import Literal
from budgetsync.models.shared import TimestampMixin

ReceiptStatus = Literal["uploaded", "analyzed", "failed"]
ReceiptSource = Literal["upload", "gmail"]


class EntryType(str, Enum):
    """Cost entry kinds a receipt can be linked to, mapped to their tables."""
    TIMESHEET = "timesheet"
    EQUIPMENT_LOG = "equipment_log"
    SUBCONTRACTOR_ENTRY = "subcontractor_entry"
    OVERHEAD_ENTRY = "overhead_entry"
    MATERIAL = "material"

    @property
    def table(self) -> str:
        return ENTRY_TABLES[self]


ENTRY_TABLES = {
    EntryType.TIMESHEET: "timesheets",
    EntryType.EQUIPMENT_LOG: "equipment_logs",
    EntryType.SUBCONTRACTOR_ENTRY: "subcontractor_entries",
    EntryType.OVERHEAD_ENTRY: "overhead_entries",
    EntryType.MATERIAL: "materials",
}


class ReceiptLineItem(BaseModel):
    description: str
    quantity: Decimal | None = None
    unit: str | None = None
    price: Decimal | None = None
    total: Decimal | None = None


class ReceiptAnalysis(BaseModel):
    """Structured data extracted from a receipt image."""
    vendor: str | None = None
    date: str | None = None  # YYYY-MM-DD as printed on the receipt
    line_items: list[ReceiptLineItem] = []
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    currency: str | None = None


class ReceiptResponse(TimestampMixin):
    id: UUID
    project_id: UUID
    storage_path: str
    original_filename: str
    mime_type: str
    file_size: int
    status: ReceiptStatus
    source: ReceiptSource = "upload"
    analysis_data: dict | None = None
    uploaded_by: str | None = None
    gmail_message_id: str | None = None
    gmail_attachment_id: str | None = None
    analyzed_at: datetime | None = None


class ReceiptLinkCreate(BaseModel):
    entry_type: EntryType
    entry_id: UUID


class ReceiptLinkResponse(TimestampMixin):
    id: UUID
    receipt_id: UUID
    entry_type: EntryType
    entry_id: UUID
