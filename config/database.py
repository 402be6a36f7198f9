"""
Database connection management.

Provides the Supabase client singleton shared by the product persistence
and taxonomy lookup services.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If the client cannot be created
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info("supabase_connected", status="success")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


# Convenience alias
db = get_supabase_client


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with row counts of the wizard's tables
    """
    try:
        client = get_supabase_client()

        products = client.table("vendor_products").select("id", count="exact").execute()
        categories = client.table("categories").select("id", count="exact").execute()

        return {
            "status": "healthy",
            "products_count": products.count,
            "categories_count": categories.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
