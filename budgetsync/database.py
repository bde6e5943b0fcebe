import asyncio
from supabase import create_client, Client
from budgetsync.config import get_settings

_client: Client | None = None


def get_supabase() -> Client:
    """Get or create a Supabase client using the service role key (backend only)."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = create_client(settings.supabase_url, settings.supabase_service_key)
    return _client


async def execute_async(query):
    """Run a PostgREST query builder in a worker thread.

    The Supabase client is synchronous; this lets callers fan out several
    reads with ``asyncio.gather`` instead of running them back to back.
    """
    return await asyncio.to_thread(query.execute)
