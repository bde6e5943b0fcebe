"""Receipt analysis agent: uses Claude vision to extract line items from receipts.

Returns vendor, date, line items and totals. Any failure (unreadable image,
API error, unparseable reply) is raised as ReceiptAnalysisError so callers
can record it on the receipt instead of failing the request.
"""
import json
import time
import re
from pathlib import Path
from anthropic import Anthropic, APIError
from loguru import logger
from pydantic import ValidationError
from budgetsync.config import get_settings
from budgetsync.errors import ReceiptAnalysisError
from budgetsync.models.receipt import ReceiptAnalysis
from budgetsync.processors.image_processor import normalize_receipt_image

PROMPT_DIR = Path(__file__).parent / "prompts" / "receipt_analysis"

NUMERIC_FIELDS = ("subtotal", "tax", "total")
LINE_NUMERIC_FIELDS = ("quantity", "price", "total")


def _load_prompt(version: str = "v1") -> str:
    prompt_file = PROMPT_DIR / f"{version}.txt"
    return prompt_file.read_text(encoding="utf-8")


def _extract_json(raw_text: str) -> str:
    if "```json" in raw_text:
        return raw_text.split("```json")[1].split("```")[0].strip()
    if "```" in raw_text:
        return raw_text.split("```")[1].split("```")[0].strip()
    return raw_text


def _clean_amount(value):
    """Strip currency formatting ("$1,200.50" → "1200.50"); None stays None."""
    if value is None or isinstance(value, (int, float)):
        return value
    cleaned = re.sub(r"[$,\s]", "", str(value))
    return cleaned or None


def parse_analysis(raw_text: str) -> ReceiptAnalysis:
    """Parse the model's reply into a ReceiptAnalysis."""
    try:
        parsed = json.loads(_extract_json(raw_text.strip()))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse receipt analysis response: {raw_text[:200]}")
        raise ReceiptAnalysisError("Receipt analysis returned invalid JSON") from e

    if not isinstance(parsed, dict):
        raise ReceiptAnalysisError("Receipt analysis returned an unexpected payload")

    if "line_items" not in parsed and "lineItems" in parsed:
        parsed["line_items"] = parsed.pop("lineItems")

    for key in NUMERIC_FIELDS:
        parsed[key] = _clean_amount(parsed.get(key))
    items = []
    for item in parsed.get("line_items") or []:
        if not isinstance(item, dict) or not item.get("description"):
            continue
        for key in LINE_NUMERIC_FIELDS:
            item[key] = _clean_amount(item.get(key))
        items.append(item)
    parsed["line_items"] = items

    try:
        return ReceiptAnalysis.model_validate(parsed)
    except ValidationError as e:
        raise ReceiptAnalysisError(f"Receipt analysis has invalid fields: {e.error_count()} errors") from e


async def analyze_receipt(
    image_bytes: bytes,
    filename: str = "receipt.jpg",
    prompt_version: str = "v1",
) -> tuple[ReceiptAnalysis, dict]:
    """Extract structured data from a receipt image.

    Args:
        image_bytes: Raw JPEG/PNG/WebP bytes.
        filename: Original filename, used for format detection and logs.
        prompt_version: Which prompt version to use.

    Returns:
        Tuple of (analysis, metadata dict).
    """
    settings = get_settings()

    try:
        processed = normalize_receipt_image(image_bytes, filename)
    except ValueError as e:
        raise ReceiptAnalysisError(str(e)) from e

    client = Anthropic(api_key=settings.anthropic_api_key)
    system_prompt = _load_prompt(prompt_version)
    start_time = time.time()

    try:
        response = client.messages.create(
            model=settings.receipt_model,
            max_tokens=2048,
            system=system_prompt,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": processed.media_type,
                                "data": processed.base64_data,
                            },
                        },
                        {
                            "type": "text",
                            "text": "Extract the receipt data as JSON.",
                        },
                    ],
                }
            ],
        )
    except APIError as e:
        logger.error(f"Receipt analysis API call failed for {filename}: {e}")
        raise ReceiptAnalysisError(f"Document analysis service error: {e}") from e

    elapsed_ms = int((time.time() - start_time) * 1000)
    tokens_used = response.usage.input_tokens + response.usage.output_tokens

    try:
        raw_text = response.content[0].text
    except (IndexError, AttributeError) as e:
        logger.error(f"Receipt analysis for {filename} returned no text block")
        raise ReceiptAnalysisError("Receipt analysis returned no text") from e

    analysis = parse_analysis(raw_text)

    metadata = {
        "prompt_version": f"receipt_analysis:{prompt_version}",
        "model_used": settings.receipt_model,
        "tokens_used": tokens_used,
        "processing_time_ms": elapsed_ms,
    }

    logger.info(
        f"Receipt analyzed: {filename} vendor={analysis.vendor!r} "
        f"items={len(analysis.line_items)} total={analysis.total} "
        f"(tokens={tokens_used}, time={elapsed_ms}ms)"
    )

    return analysis, metadata
