"""Async Supabase client wrapper with async context manager support."""

from typing import Optional
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from remindersync.utils.config import AppConfig
from remindersync.utils.errors import SupabaseError
from remindersync.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instance, created lazily on first use
_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """Get or create the Supabase client singleton."""
    global _client

    if _client is None:
        config = AppConfig.from_env()

        if not config.supabase_url or not config.supabase_key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")

        # The owner id is trusted as given; no auth session is kept on device
        options = AsyncClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = await acreate_client(config.supabase_url, config.supabase_key, options)
        logger.info("Supabase client initialized", url=config.supabase_url)

    return _client


async def close_supabase_client() -> None:
    """Drop the client singleton."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[AsyncClient] = None

    async def __aenter__(self) -> AsyncClient:
        self.client = await get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        return False
