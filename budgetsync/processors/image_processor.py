"""Receipt image normalization before vision analysis.

Supports JPEG, PNG and WebP. Phone photos are rotated upright from their
EXIF orientation, flattened to RGB, bounded in size and lightly sharpened
so printed totals stay legible.
"""
import io
import base64
from dataclasses import dataclass
from loguru import logger

from PIL import Image, ImageEnhance, ImageOps, UnidentifiedImageError

SUPPORTED_FORMATS = {"JPEG", "PNG", "WEBP"}

MEDIA_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}

RECEIPT_PROFILE = {
    "max_dimension": 2400,
    "quality": 90,
    "contrast_factor": 1.15,
    "sharpness_factor": 1.3,
}


@dataclass
class ProcessedImage:
    """Result of image normalization."""
    image_bytes: bytes
    base64_data: str
    format_original: str
    width: int
    height: int
    file_size_original: int
    file_size_output: int

    media_type: str = "image/jpeg"


def detect_format(filename: str, file_bytes: bytes) -> str:
    """Detect image format from magic bytes, falling back to the extension."""
    if file_bytes[:4] == b"\x89PNG":
        return "PNG"
    if file_bytes[:2] == b"\xff\xd8":
        return "JPEG"
    if file_bytes[:4] == b"RIFF" and file_bytes[8:12] == b"WEBP":
        return "WEBP"

    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext in ("jpg", "jpeg"):
        return "JPEG"
    if ext == "png":
        return "PNG"
    if ext == "webp":
        return "WEBP"
    return "UNKNOWN"


def _render_jpeg(file_bytes: bytes) -> tuple[bytes, tuple[int, int]]:
    img = Image.open(io.BytesIO(file_bytes))
    img = ImageOps.exif_transpose(img)

    # Convert RGBA/P to RGB for JPEG output
    if img.mode in ("RGBA", "P", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        if img.mode == "P":
            img = img.convert("RGBA")
        background.paste(img, mask=img.split()[-1])
        img = background
    elif img.mode != "RGB":
        img = img.convert("RGB")

    max_dim = RECEIPT_PROFILE["max_dimension"]
    w, h = img.size
    if max(w, h) > max_dim:
        ratio = max_dim / max(w, h)
        img = img.resize((int(w * ratio), int(h * ratio)), Image.LANCZOS)
        logger.debug(f"Resized {w}x{h} → {img.size[0]}x{img.size[1]}")

    img = ImageEnhance.Contrast(img).enhance(RECEIPT_PROFILE["contrast_factor"])
    img = ImageEnhance.Sharpness(img).enhance(RECEIPT_PROFILE["sharpness_factor"])

    output = io.BytesIO()
    img.save(output, format="JPEG", quality=RECEIPT_PROFILE["quality"])
    return output.getvalue(), img.size


def normalize_receipt_image(file_bytes: bytes, filename: str = "receipt.jpg") -> ProcessedImage:
    """Normalize a receipt photo or scan into a JPEG suitable for the vision model.

    Raises:
        ValueError: The bytes are not a supported image, or are truncated or corrupt.
    """
    original_size = len(file_bytes)
    original_format = detect_format(filename, file_bytes)
    if original_format not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported receipt image format: {filename}")

    # Pillow decodes lazily, so truncated data only fails once pixels are read.
    try:
        output_bytes, (width, height) = _render_jpeg(file_bytes)
    except UnidentifiedImageError as e:
        raise ValueError(f"Unreadable image: {filename}") from e
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Corrupt or oversized image: {filename} ({e})") from e

    result = ProcessedImage(
        image_bytes=output_bytes,
        base64_data=base64.b64encode(output_bytes).decode("utf-8"),
        format_original=original_format,
        width=width,
        height=height,
        file_size_original=original_size,
        file_size_output=len(output_bytes),
    )

    logger.info(
        f"Receipt image normalized: {filename} ({original_format} → JPEG, "
        f"{original_size // 1024}KB → {len(output_bytes) // 1024}KB, "
        f"{result.width}x{result.height})"
    )
    return result
