"""Company inbox connection used for receipt ingestion.

At most one connection is active. Creating one (directly or through the
Google OAuth flow) replaces the previous one atomically; see
``budgetsync.services.gmail_connection``.

OAuth flow:
1. POST /oauth/connect → returns Google OAuth URL
2. User authorizes in browser
3. GET /oauth/callback → exchanges code for tokens, activates the connection
"""
from urllib.parse import urlencode
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
import httpx
import jwt

from budgetsync.auth import get_current_user
from budgetsync.config import get_settings
from budgetsync.ingestors.gmail import GmailIngestor
from budgetsync.models.gmail_connection import (
    GmailConnectionCreate,
    GmailConnectionResponse,
    GmailSyncRequest,
)
from budgetsync.routers.projects import verify_project_exists
from budgetsync.services.gmail_connection import (
    get_active_connection,
    create_active_connection,
    deactivate_connection,
    update_connection,
)
from budgetsync.workers.receipt_sync import sync_gmail_receipts

router = APIRouter(prefix="/api/v1/gmail-connection", tags=["gmail"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
]
OAUTH_STATE_AUDIENCE = "gmail-oauth"


def _oauth_state_key() -> str:
    settings = get_settings()
    return settings.gmail_oauth_state_secret or settings.supabase_service_key


def _issue_oauth_state(user_id: str) -> str:
    """Short-lived signed token naming the user who started the OAuth flow."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "aud": OAUTH_STATE_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(seconds=settings.gmail_oauth_state_ttl_seconds),
    }
    return jwt.encode(claims, _oauth_state_key(), algorithm="HS256")


def _verify_oauth_state(state: str) -> str:
    try:
        payload = jwt.decode(
            state,
            _oauth_state_key(),
            algorithms=["HS256"],
            audience=OAUTH_STATE_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=400, detail="OAuth state expired, start the connection again")
    except jwt.InvalidTokenError:
        logger.warning("Gmail OAuth callback rejected: invalid state")
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=400, detail="Invalid OAuth state")
    return user_id


def _require_active() -> dict:
    connection = get_active_connection()
    if not connection:
        raise HTTPException(status_code=404, detail="No active Gmail connection")
    return connection


@router.get("", response_model=GmailConnectionResponse | None)
async def get_connection(user: dict = Depends(get_current_user)):
    return get_active_connection()


@router.post("", response_model=GmailConnectionResponse, status_code=201)
async def create_connection(
    body: GmailConnectionCreate,
    user: dict = Depends(get_current_user),
):
    """Activate a new inbox, deactivating the current one.

    409 if a concurrent activation won the race, 503 if the lock stayed busy.
    """
    return await create_active_connection(body.gmail_email, body.description)


@router.delete("", status_code=204)
async def disconnect(user: dict = Depends(get_current_user)):
    connection = _require_active()
    deactivate_connection(connection["id"])
    logger.info(f"Gmail connection {connection['id']} disconnected by {user['email']}")


@router.post("/sync", status_code=202)
async def sync_receipts(
    body: GmailSyncRequest,
    user: dict = Depends(get_current_user),
):
    """Queue a scan of the inbox and return immediately."""
    connection = _require_active()
    verify_project_exists(body.project_id)

    update_connection(connection["id"], {"sync_status": "pending"})
    task = sync_gmail_receipts.delay(
        str(connection["id"]),
        str(body.project_id),
        body.since_date.isoformat() if body.since_date else None,
    )
    logger.info(f"Gmail sync queued for connection {connection['id']} (task {task.id})")
    return {"status": "queued", "task_id": task.id, "connection_id": connection["id"]}


# ── OAuth ──

@router.post("/oauth/connect")
async def oauth_connect(user: dict = Depends(get_current_user)):
    """Start Gmail OAuth flow. Returns the Google authorization URL."""
    settings = get_settings()

    if not settings.gmail_client_id or not settings.gmail_redirect_uri:
        raise HTTPException(
            status_code=503,
            detail="Gmail integration not configured. Set GMAIL_CLIENT_ID and GMAIL_REDIRECT_URI.",
        )

    params = {
        "client_id": settings.gmail_client_id,
        "redirect_uri": settings.gmail_redirect_uri,
        "response_type": "code",
        "scope": " ".join(GMAIL_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": _issue_oauth_state(user["user_id"]),
    }

    auth_url = f"{GOOGLE_AUTH_URL}?{urlencode(params)}"
    logger.info(f"Gmail OAuth initiated by {user['email']}")

    return {"auth_url": auth_url}


@router.get("/oauth/callback", response_model=GmailConnectionResponse)
async def oauth_callback(code: str, state: str):
    """Handle Google OAuth callback. Exchanges code for tokens.

    Google redirects the browser here without our bearer token, so the signed
    ``state`` issued by /oauth/connect is what ties the callback to a user.
    """
    settings = get_settings()

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    user_id = _verify_oauth_state(state)

    async with httpx.AsyncClient() as client:
        resp = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.gmail_client_id,
                "client_secret": settings.gmail_client_secret,
                "redirect_uri": settings.gmail_redirect_uri,
                "grant_type": "authorization_code",
            },
        )

        if resp.status_code != 200:
            logger.error(f"Gmail token exchange failed: {resp.text[:300]}")
            raise HTTPException(
                status_code=502,
                detail="Failed to exchange authorization code with Google",
            )

        tokens = resp.json()

    access_token = tokens["access_token"]
    refresh_token = tokens.get("refresh_token")
    expires_in = tokens.get("expires_in", 3600)
    token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

    if not refresh_token:
        raise HTTPException(
            status_code=400,
            detail="No refresh token received. Please revoke access at "
            "https://myaccount.google.com/permissions and try again.",
        )

    try:
        gmail_email = await GmailIngestor().get_profile_email(access_token)
    except httpx.HTTPError as e:
        logger.error(f"Gmail profile lookup failed: {e}")
        raise HTTPException(status_code=502, detail="Could not read the Gmail profile") from e

    connection = await create_active_connection(
        gmail_email.lower(),
        description="Connected through Google OAuth",
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=token_expires_at,
    )
    logger.info(f"Gmail OAuth completed for {gmail_email} by user {user_id}")
    return connection
