import base64
import httpx
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from loguru import logger
from budgetsync.config import get_settings
from budgetsync.errors import UpstreamServiceError
from budgetsync.services.gmail_connection import update_connection

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

RECEIPT_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png"}


@dataclass
class AttachmentRef:
    message_id: str
    attachment_id: str
    filename: str
    mime_type: str
    size: int = 0


@dataclass
class EmailMessage:
    id: str
    thread_id: str
    subject: str
    sender: str
    date: str
    snippet: str
    attachments: list[AttachmentRef] = field(default_factory=list)


def build_receipt_query(since_date: date | None = None) -> str:
    """Gmail search query for receipt/invoice emails with image attachments."""
    parts = [
        "has:attachment",
        "(filename:jpg OR filename:jpeg OR filename:png)",
        "(subject:receipt OR subject:invoice OR receipt OR invoice)",
    ]
    if since_date:
        parts.append(f"after:{since_date.strftime('%Y/%m/%d')}")
    return " ".join(parts)


class GmailIngestor:
    """Reads receipt emails from the company inbox via the Gmail REST API."""

    async def _refresh_token_if_needed(self, connection: dict) -> str:
        """Refresh OAuth token if expired, return valid access token."""
        settings = get_settings()

        if connection.get("access_token") and connection.get("token_expires_at"):
            expires = datetime.fromisoformat(connection["token_expires_at"])
            if expires > datetime.now(timezone.utc):
                return connection["access_token"]

        if not connection.get("refresh_token"):
            raise UpstreamServiceError(
                f"Gmail connection {connection['gmail_email']} has no OAuth credentials; reconnect the inbox"
            )

        async with httpx.AsyncClient() as client:
            resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": settings.gmail_client_id,
                    "client_secret": settings.gmail_client_secret,
                    "refresh_token": connection["refresh_token"],
                    "grant_type": "refresh_token",
                },
            )
            resp.raise_for_status()
            tokens = resp.json()

        new_access_token = tokens["access_token"]
        expires_in = tokens.get("expires_in", 3600)
        new_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        update_connection(
            connection["id"],
            {"access_token": new_access_token, "token_expires_at": new_expires_at},
        )
        connection["access_token"] = new_access_token
        connection["token_expires_at"] = new_expires_at.isoformat()

        return new_access_token

    async def search_receipt_emails(
        self,
        connection: dict,
        since_date: date | None = None,
        max_results: int | None = None,
    ) -> list[EmailMessage]:
        """Search the inbox for receipt emails and collect their image attachments."""
        settings = get_settings()
        access_token = await self._refresh_token_if_needed(connection)
        headers = {"Authorization": f"Bearer {access_token}"}
        query = build_receipt_query(since_date)
        messages: list[EmailMessage] = []

        async with httpx.AsyncClient() as client:
            resp = await client.get(
                f"{GMAIL_API_BASE}/users/me/messages",
                headers=headers,
                params={"q": query, "maxResults": max_results or settings.gmail_scan_max_results},
            )
            resp.raise_for_status()
            refs = resp.json().get("messages", [])

            for msg_ref in refs:
                msg_id = msg_ref.get("id")
                if not msg_id:
                    continue

                msg_resp = await client.get(
                    f"{GMAIL_API_BASE}/users/me/messages/{msg_id}",
                    headers=headers,
                    params={"format": "full"},
                )
                msg_resp.raise_for_status()
                messages.append(self._parse_message(msg_resp.json()))

        logger.info(
            f"Gmail search: {len(messages)} receipt emails in {connection['gmail_email']} "
            f"(query: {query})"
        )
        return messages

    async def download_attachment(self, connection: dict, ref: AttachmentRef) -> bytes:
        """Download a Gmail attachment by message_id and attachment_id."""
        access_token = await self._refresh_token_if_needed(connection)

        async with httpx.AsyncClient() as client:
            resp = await client.get(
                f"{GMAIL_API_BASE}/users/me/messages/{ref.message_id}/attachments/{ref.attachment_id}",
                headers={"Authorization": f"Bearer {access_token}"},
            )
            resp.raise_for_status()
            data = resp.json().get("data")

        if not data:
            raise UpstreamServiceError(f"No attachment data received for {ref.filename}")
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))

    async def get_profile_email(self, access_token: str) -> str:
        """Email address of the mailbox the token belongs to."""
        async with httpx.AsyncClient() as client:
            resp = await client.get(
                f"{GMAIL_API_BASE}/users/me/profile",
                headers={"Authorization": f"Bearer {access_token}"},
            )
            resp.raise_for_status()
            return resp.json()["emailAddress"]

    def _parse_message(self, msg_data: dict) -> EmailMessage:
        payload = msg_data.get("payload", {})
        msg_headers = {
            h["name"].lower(): h["value"] for h in payload.get("headers", [])
        }
        return EmailMessage(
            id=msg_data["id"],
            thread_id=msg_data.get("threadId", ""),
            subject=msg_headers.get("subject", ""),
            sender=msg_headers.get("from", ""),
            date=msg_headers.get("date", ""),
            snippet=msg_data.get("snippet", ""),
            attachments=self._extract_image_attachments(payload, msg_data["id"]),
        )

    def _extract_image_attachments(self, payload: dict, message_id: str) -> list[AttachmentRef]:
        """Recursively collect JPEG/PNG attachment references from MIME parts."""
        attachments = []
        for part in payload.get("parts", []):
            body = part.get("body", {})
            if (
                part.get("filename")
                and body.get("attachmentId")
                and part.get("mimeType", "").lower() in RECEIPT_MIME_TYPES
            ):
                attachments.append(
                    AttachmentRef(
                        message_id=message_id,
                        attachment_id=body["attachmentId"],
                        filename=part["filename"],
                        mime_type="image/jpeg" if part["mimeType"].lower() == "image/jpg" else part["mimeType"].lower(),
                        size=body.get("size", 0),
                    )
                )
            attachments.extend(self._extract_image_attachments(part, message_id))
        return attachments
