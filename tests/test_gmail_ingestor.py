"""Tests for the Gmail receipt ingestor."""
import base64
import os
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch, MagicMock, AsyncMock

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

from budgetsync.errors import UpstreamServiceError
from budgetsync.ingestors.gmail import GmailIngestor, AttachmentRef, build_receipt_query


def _message_payload() -> dict:
    return {
        "id": "msg-1",
        "threadId": "thr-1",
        "snippet": "Receipt for your order",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [
                {"name": "Subject", "value": "Receipt #4471"},
                {"name": "From", "value": "Ferguson <orders@ferguson.com>"},
                {"name": "Date", "value": "Wed, 11 Mar 2026 10:00:00 -0700"},
            ],
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "filename": "",
                    "body": {"size": 0},
                    "parts": [
                        {"mimeType": "text/plain", "filename": "", "body": {"size": 120}},
                    ],
                },
                {
                    "mimeType": "image/jpeg",
                    "filename": "receipt.jpg",
                    "body": {"attachmentId": "att-1", "size": 20480},
                },
                {
                    "mimeType": "multipart/related",
                    "filename": "",
                    "body": {},
                    "parts": [
                        {
                            "mimeType": "image/jpg",
                            "filename": "scan.JPG",
                            "body": {"attachmentId": "att-2", "size": 4096},
                        },
                        {
                            "mimeType": "image/png",
                            "filename": "page2.png",
                            "body": {"attachmentId": "att-3", "size": 8192},
                        },
                    ],
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "invoice.pdf",
                    "body": {"attachmentId": "att-4", "size": 90000},
                },
            ],
        },
    }


def _connection(**overrides) -> dict:
    data = {
        "id": "conn-1",
        "gmail_email": "receipts@company.com",
        "access_token": "valid-token",
        "refresh_token": "refresh",
        "token_expires_at": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
    }
    data.update(overrides)
    return data


def _mock_async_client(client: MagicMock) -> MagicMock:
    cls = MagicMock()
    cls.return_value.__aenter__ = AsyncMock(return_value=client)
    cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return cls


class TestBuildReceiptQuery:
    def test_with_since_date(self):
        query = build_receipt_query(date(2026, 3, 5))
        assert query == (
            "has:attachment (filename:jpg OR filename:jpeg OR filename:png) "
            "(subject:receipt OR subject:invoice OR receipt OR invoice) after:2026/03/05"
        )

    def test_without_since_date(self):
        assert "after:" not in build_receipt_query()


class TestParseMessage:
    def test_headers(self):
        msg = GmailIngestor()._parse_message(_message_payload())
        assert msg.id == "msg-1"
        assert msg.subject == "Receipt #4471"
        assert msg.sender == "Ferguson <orders@ferguson.com>"

    def test_image_attachments_found_recursively(self):
        msg = GmailIngestor()._parse_message(_message_payload())
        assert [a.attachment_id for a in msg.attachments] == ["att-1", "att-2", "att-3"]
        assert all(a.message_id == "msg-1" for a in msg.attachments)

    def test_image_jpg_normalized(self):
        msg = GmailIngestor()._parse_message(_message_payload())
        scan = next(a for a in msg.attachments if a.attachment_id == "att-2")
        assert scan.mime_type == "image/jpeg"
        assert scan.filename == "scan.JPG"

    def test_pdf_ignored(self):
        msg = GmailIngestor()._parse_message(_message_payload())
        assert "att-4" not in {a.attachment_id for a in msg.attachments}


class TestTokens:
    @pytest.mark.asyncio
    async def test_valid_token_reused(self):
        token = await GmailIngestor()._refresh_token_if_needed(_connection())
        assert token == "valid-token"

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self):
        conn = _connection(
            refresh_token=None,
            token_expires_at=(datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat(),
        )
        with pytest.raises(UpstreamServiceError):
            await GmailIngestor()._refresh_token_if_needed(conn)

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_and_stored(self):
        conn = _connection(token_expires_at=(datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat())
        client = MagicMock()
        resp = MagicMock()
        resp.json.return_value = {"access_token": "fresh-token", "expires_in": 3600}
        client.post = AsyncMock(return_value=resp)

        with patch("budgetsync.ingestors.gmail.httpx.AsyncClient", _mock_async_client(client)), \
             patch("budgetsync.ingestors.gmail.update_connection") as mock_update:
            token = await GmailIngestor()._refresh_token_if_needed(conn)

        assert token == "fresh-token"
        assert conn["access_token"] == "fresh-token"
        stored = mock_update.call_args.args[1]
        assert stored["access_token"] == "fresh-token"
        assert isinstance(stored["token_expires_at"], datetime)


class TestDownloadAttachment:
    @pytest.mark.asyncio
    async def test_decodes_unpadded_base64url(self):
        raw = b"\xff\xd8\xff\xe0receipt-bytes?>"
        encoded = base64.urlsafe_b64encode(raw).decode().rstrip("=")
        client = MagicMock()
        resp = MagicMock()
        resp.json.return_value = {"data": encoded, "size": len(raw)}
        client.get = AsyncMock(return_value=resp)
        ref = AttachmentRef("msg-1", "att-1", "receipt.jpg", "image/jpeg")

        with patch("budgetsync.ingestors.gmail.httpx.AsyncClient", _mock_async_client(client)):
            data = await GmailIngestor().download_attachment(_connection(), ref)

        assert data == raw
        url = client.get.call_args.args[0]
        assert url.endswith("/users/me/messages/msg-1/attachments/att-1")

    @pytest.mark.asyncio
    async def test_missing_data(self):
        client = MagicMock()
        resp = MagicMock()
        resp.json.return_value = {}
        client.get = AsyncMock(return_value=resp)
        ref = AttachmentRef("msg-1", "att-1", "receipt.jpg", "image/jpeg")

        with patch("budgetsync.ingestors.gmail.httpx.AsyncClient", _mock_async_client(client)):
            with pytest.raises(UpstreamServiceError):
                await GmailIngestor().download_attachment(_connection(), ref)
