"""
Supabase Database Service

Provides the Database facade over the repositories.

Usage:
    from core.services.database import get_database

    # In async context (after init_database() called at startup):
    db = get_database()
    order = await db.get_order_by_reference("order_...")

    # At FastAPI startup (lifespan):
    await init_database()

    # In cron jobs and workers (no lifespan):
    db = await get_database_async()
"""

import asyncio
import os
from typing import Optional

from supabase._async.client import AsyncClient
from supabase._async.client import create_client as acreate_client

from core.logging import get_logger
from core.services.models import Order, OrderItem, TransitionLogEntry
from core.services.repositories import (
    CouponRepository,
    OrderRepository,
    ProductRepository,
    TransitionLogRepository,
    WebhookEventRepository,
)

logger = get_logger(__name__)


class Database:
    """
    Supabase database client with all order engine operations.

    Repositories are exposed as attributes; the most common reads are also
    available as flat methods.

    IMPORTANT: This class uses async Supabase client (AsyncClient).
    Must be initialized via async factory method `create()` or `init_database()`.
    """

    def __init__(self, client: AsyncClient):
        """Private constructor. Use Database.create() or init_database() instead."""
        self.client = client

        self.orders = OrderRepository(self.client)
        self.transition_log = TransitionLogRepository(self.client)
        self.webhook_events = WebhookEventRepository(self.client)
        self.products = ProductRepository(self.client)
        self.coupons = CouponRepository(self.client)

    @classmethod
    async def create(cls) -> "Database":
        """Async factory method to create Database instance."""
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        client = await acreate_client(url, key)
        return cls(client)

    # ==================== ORDER READS (delegated) ====================

    async def get_order_by_id(self, order_id: str) -> Order | None:
        return await self.orders.get_by_id(order_id)

    async def get_order_by_reference(self, external_reference: str) -> Order | None:
        return await self.orders.get_by_external_reference(external_reference)

    async def get_order_items(self, order_id: str) -> list[OrderItem]:
        return await self.orders.get_items(order_id)

    async def get_order_history(self, order_id: str) -> list[TransitionLogEntry]:
        return await self.transition_log.list_for_order(order_id)


# Singleton instance (initialized lazily or at startup via init_database())
_db: Database | None = None
_db_lock: Optional[asyncio.Lock] = None


def _get_lock() -> asyncio.Lock:
    """Get or create async lock for initialization."""
    global _db_lock
    if _db_lock is None:
        _db_lock = asyncio.Lock()
    return _db_lock


async def init_database() -> Database:
    """Initialize async database singleton.

    Can be called at FastAPI startup (lifespan) or lazily on first use.
    """
    global _db
    if _db is not None:
        return _db

    async with _get_lock():
        # Double-check after acquiring lock
        if _db is None:
            logger.info("Initializing async Supabase client...")
            _db = await Database.create()
            logger.info("Async Supabase client initialized successfully")
    return _db


async def close_database() -> None:
    """Drop the singleton. Called at FastAPI shutdown (lifespan)."""
    global _db
    if _db is not None:
        _db = None
        logger.info("Supabase client released")


async def get_database_async() -> Database:
    """Get database instance with lazy async initialization.

    Use this in cron jobs and standalone serverless functions
    where lifespan is not available.
    """
    if _db is None:
        return await init_database()
    return _db


def get_database() -> Database:
    """Get database instance (sync accessor).

    Raises:
        RuntimeError: If database not initialized
    """
    if _db is None:
        raise RuntimeError(
            "Database not initialized. Use 'await get_database_async()' for lazy init, "
            "or call 'await init_database()' at startup."
        )
    return _db


def is_database_initialized() -> bool:
    """Check if database singleton is initialized."""
    return _db is not None
