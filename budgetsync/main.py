from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
import sys

from budgetsync.config import get_settings
from budgetsync.errors import BudgetSyncError, LockUnavailableError
from budgetsync.routers import (
    projects,
    cost_entries,
    progress_reports,
    categories,
    employees,
    change_orders,
    receipts,
    gmail_connection,
)
from budgetsync.middleware.rate_limiter import RateLimitMiddleware

# Configure loguru
logger.remove()
logger.add(sys.stderr, format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}", level="INFO")

app = FastAPI(
    title="BudgetSync Field API",
    description="Construction project budget tracking with receipt ingestion",
    version="1.0.0",
)

# Middleware
settings = get_settings()
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BudgetSyncError)
async def budgetsync_error_handler(request: Request, exc: BudgetSyncError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    headers = None
    if isinstance(exc, LockUnavailableError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


# Routers
app.include_router(projects.router)
app.include_router(cost_entries.router)
app.include_router(progress_reports.router)
app.include_router(categories.router)
app.include_router(employees.router)
app.include_router(change_orders.router)
app.include_router(receipts.router)
app.include_router(gmail_connection.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "version": "1.0.0"}


@app.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with dependency status."""
    health = {
        "status": "ok",
        "version": "1.0.0",
        "dependencies": {},
    }

    # Check Supabase
    try:
        from budgetsync.database import get_supabase
        db = get_supabase()
        db.table("projects").select("id").limit(1).execute()
        health["dependencies"]["supabase"] = "ok"
    except Exception as e:
        health["dependencies"]["supabase"] = f"error: {str(e)[:100]}"
        health["status"] = "degraded"

    # Check Redis
    try:
        import redis
        r = redis.from_url(settings.redis_url)
        r.ping()
        health["dependencies"]["redis"] = "ok"
    except Exception as e:
        health["dependencies"]["redis"] = f"error: {str(e)[:100]}"
        health["status"] = "degraded"

    # Check Anthropic API key is set
    health["dependencies"]["anthropic"] = (
        "ok" if settings.anthropic_api_key else "not configured"
    )

    # Check Gmail OAuth client is set
    health["dependencies"]["gmail_oauth"] = (
        "ok" if settings.gmail_client_id else "not configured"
    )

    # Queue metrics (Celery)
    try:
        from budgetsync.workers.celery_app import celery_app
        inspect = celery_app.control.inspect(timeout=2.0)
        active = inspect.active() or {}
        reserved = inspect.reserved() or {}
        active_count = sum(len(v) for v in active.values())
        pending_count = sum(len(v) for v in reserved.values())
        health["queue"] = {
            "active_tasks": active_count,
            "pending_tasks": pending_count,
            "workers": list(active.keys()),
        }
    except Exception as e:
        health["queue"] = {"error": str(e)[:100]}

    return health
