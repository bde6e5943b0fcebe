from uuid import UUID, uuid4
from pathlib import PurePosixPath
from loguru import logger
from budgetsync.config import get_settings
from budgetsync.database import get_supabase

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def receipt_path(project_id: UUID | str, filename: str, mime_type: str) -> str:
    """Storage key for a receipt; a fresh UUID avoids collisions between uploads."""
    ext = PurePosixPath(filename).suffix.lower() or EXTENSIONS.get(mime_type, ".jpg")
    return f"{project_id}/{uuid4()}{ext}"


def upload_receipt_file(path: str, file_bytes: bytes, content_type: str) -> str:
    """Upload a receipt image to Supabase Storage and return the path."""
    settings = get_settings()
    db = get_supabase()
    db.storage.from_(settings.receipts_bucket).upload(
        path, file_bytes, {"content-type": content_type}
    )
    logger.info(f"Uploaded {path} to bucket {settings.receipts_bucket} ({len(file_bytes)} bytes)")
    return path


def download_receipt_file(path: str) -> bytes:
    settings = get_settings()
    db = get_supabase()
    return db.storage.from_(settings.receipts_bucket).download(path)


def delete_receipt_file(path: str) -> None:
    settings = get_settings()
    db = get_supabase()
    db.storage.from_(settings.receipts_bucket).remove([path])
    logger.info(f"Removed {path} from bucket {settings.receipts_bucket}")


def discard_receipt_file(path: str) -> None:
    """Remove an upload whose receipt row was never written.

    Cleanup failures are logged, not raised, so they never mask the insert error.
    """
    try:
        delete_receipt_file(path)
    except Exception as e:
        logger.warning(f"Could not remove orphaned upload {path}: {e}")


def generate_signed_url(path: str, expires: int = 3600) -> str:
    """Generate a signed URL for temporary access to a receipt image."""
    settings = get_settings()
    db = get_supabase()
    result = db.storage.from_(settings.receipts_bucket).create_signed_url(path, expires)
    return result["signedURL"]
