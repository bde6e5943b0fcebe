"""Tests for the receipt analysis agent."""
import io
import os
import json
import pytest
from decimal import Decimal
from unittest.mock import patch, MagicMock

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

import httpx
from anthropic import APIError
from PIL import Image
from budgetsync.agents.receipt_analyzer import analyze_receipt, parse_analysis, _load_prompt
from budgetsync.errors import ReceiptAnalysisError, UpstreamServiceError


def _mock_anthropic_response(text: str, input_tokens=100, output_tokens=50):
    """Create a mock Anthropic API response."""
    response = MagicMock()
    content_block = MagicMock()
    content_block.text = text
    response.content = [content_block]
    response.usage = MagicMock()
    response.usage.input_tokens = input_tokens
    response.usage.output_tokens = output_tokens
    return response


def _receipt_jpeg() -> bytes:
    img = Image.new("RGB", (400, 800), color=(250, 250, 250))
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return buf.getvalue()


HOME_DEPOT = {
    "vendor": "Home Depot",
    "date": "2026-03-14",
    "line_items": [
        {"description": "2x4x8 SPF stud", "quantity": 24, "unit": "each", "price": 4.12, "total": 98.88},
        {"description": "Deck screws 5lb", "quantity": 1, "unit": "box", "price": 32.97, "total": 32.97},
    ],
    "subtotal": 131.85,
    "tax": 10.88,
    "total": 142.73,
    "currency": "USD",
}


class TestParseAnalysis:
    def test_plain_json(self):
        analysis = parse_analysis(json.dumps(HOME_DEPOT))
        assert analysis.vendor == "Home Depot"
        assert analysis.date == "2026-03-14"
        assert len(analysis.line_items) == 2
        assert analysis.total == Decimal("142.73")

    def test_markdown_fenced_json(self):
        analysis = parse_analysis("```json\n" + json.dumps(HOME_DEPOT) + "\n```")
        assert analysis.vendor == "Home Depot"

    def test_bare_fence(self):
        analysis = parse_analysis("```\n" + json.dumps({"vendor": "Lowe's"}) + "\n```")
        assert analysis.vendor == "Lowe's"
        assert analysis.line_items == []

    def test_camel_case_line_items(self):
        analysis = parse_analysis(json.dumps({"lineItems": [{"description": "Gloves", "total": 9.99}]}))
        assert analysis.line_items[0].description == "Gloves"
        assert analysis.line_items[0].total == Decimal("9.99")

    def test_currency_strings_cleaned(self):
        analysis = parse_analysis(json.dumps({
            "total": "$1,204.50",
            "line_items": [{"description": "Concrete", "price": "$ 6.75"}],
        }))
        assert analysis.total == Decimal("1204.50")
        assert analysis.line_items[0].price == Decimal("6.75")

    def test_items_without_description_dropped(self):
        analysis = parse_analysis(json.dumps({
            "line_items": [{"description": ""}, {"total": 3}, {"description": "Tape"}],
        }))
        assert [i.description for i in analysis.line_items] == ["Tape"]

    def test_nulls_allowed(self):
        analysis = parse_analysis(json.dumps({"vendor": None, "date": None, "total": None}))
        assert analysis.vendor is None
        assert analysis.total is None

    def test_invalid_json(self):
        with pytest.raises(ReceiptAnalysisError):
            parse_analysis("I could not read this receipt.")

    def test_non_object(self):
        with pytest.raises(ReceiptAnalysisError):
            parse_analysis("[1, 2, 3]")

    def test_invalid_amount(self):
        with pytest.raises(ReceiptAnalysisError):
            parse_analysis(json.dumps({"total": "about twelve"}))

    def test_analysis_error_is_upstream(self):
        assert issubclass(ReceiptAnalysisError, UpstreamServiceError)


class TestAnalyzeReceipt:
    @pytest.mark.asyncio
    @patch("budgetsync.agents.receipt_analyzer.Anthropic")
    async def test_success(self, mock_anthropic_cls):
        mock_client = MagicMock()
        mock_anthropic_cls.return_value = mock_client
        mock_client.messages.create.return_value = _mock_anthropic_response(json.dumps(HOME_DEPOT))

        analysis, metadata = await analyze_receipt(_receipt_jpeg(), "receipt.jpg")

        assert analysis.vendor == "Home Depot"
        assert analysis.subtotal == Decimal("131.85")
        assert metadata["model_used"] == "claude-sonnet-4-5-20250514"
        assert metadata["tokens_used"] == 150
        assert metadata["prompt_version"] == "receipt_analysis:v1"

        kwargs = mock_client.messages.create.call_args.kwargs
        image_block = kwargs["messages"][0]["content"][0]
        assert image_block["type"] == "image"
        assert image_block["source"]["media_type"] == "image/jpeg"
        assert kwargs["system"] == _load_prompt("v1")

    @pytest.mark.asyncio
    @patch("budgetsync.agents.receipt_analyzer.Anthropic")
    async def test_api_error(self, mock_anthropic_cls):
        mock_client = MagicMock()
        mock_anthropic_cls.return_value = mock_client
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        mock_client.messages.create.side_effect = APIError("overloaded", request, body=None)

        with pytest.raises(ReceiptAnalysisError):
            await analyze_receipt(_receipt_jpeg(), "receipt.jpg")

    @pytest.mark.asyncio
    @patch("budgetsync.agents.receipt_analyzer.Anthropic")
    async def test_unparseable_reply(self, mock_anthropic_cls):
        mock_client = MagicMock()
        mock_anthropic_cls.return_value = mock_client
        mock_client.messages.create.return_value = _mock_anthropic_response("Sorry, too blurry.")

        with pytest.raises(ReceiptAnalysisError):
            await analyze_receipt(_receipt_jpeg(), "receipt.jpg")

    @pytest.mark.asyncio
    @patch("budgetsync.agents.receipt_analyzer.Anthropic")
    async def test_not_an_image(self, mock_anthropic_cls):
        with pytest.raises(ReceiptAnalysisError):
            await analyze_receipt(b"%PDF-1.4 not an image", "receipt.pdf")
        mock_anthropic_cls.assert_not_called()

    @pytest.mark.asyncio
    @patch("budgetsync.agents.receipt_analyzer.Anthropic")
    async def test_truncated_image(self, mock_anthropic_cls):
        with pytest.raises(ReceiptAnalysisError):
            await analyze_receipt(_receipt_jpeg()[:300], "receipt.jpg")
        mock_anthropic_cls.assert_not_called()

    @pytest.mark.asyncio
    @patch("budgetsync.agents.receipt_analyzer.Anthropic")
    async def test_reply_without_text(self, mock_anthropic_cls):
        mock_client = MagicMock()
        mock_anthropic_cls.return_value = mock_client
        response = _mock_anthropic_response("")
        response.content = []
        mock_client.messages.create.return_value = response

        with pytest.raises(ReceiptAnalysisError, match="no text"):
            await analyze_receipt(_receipt_jpeg(), "receipt.jpg")
