"""Base repository with shared Supabase client."""

from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient

UNIQUE_VIOLATION = "23505"


def is_duplicate_key_error(exception: Exception) -> bool:
    """Check if exception is a unique constraint violation."""
    if isinstance(exception, APIError) and str(exception.code) == UNIQUE_VIOLATION:
        return True
    error_str = str(exception).lower()
    return UNIQUE_VIOLATION in error_str or "duplicate key" in error_str


class BaseRepository:
    """Base class for all repositories.

    All methods use the async client and must be awaited.
    """

    def __init__(self, client: AsyncClient) -> None:
        self.client = client
