"""
Shared Dependencies for Routers

Lazy-loaded singletons to optimize cold start.
Tests swap them through `app.dependency_overrides`.
"""

from core.services.database import Database, get_database_async
from core.services.fulfillment import FulfillmentClient, get_fulfillment_client
from core.services.payments import PaymentGatewayClient, get_gateway_client


# ==================== LAZY SINGLETONS ====================

async def get_db() -> Database:
    """Database singleton, initialized on first use (no lifespan on serverless)."""
    return await get_database_async()


def get_gateway() -> PaymentGatewayClient:
    return get_gateway_client()


def get_fulfillment() -> FulfillmentClient:
    return get_fulfillment_client()


# ==================== SHUTDOWN HELPERS ====================

async def shutdown_services():
    """Cleanly close singleton services (http clients, etc.)."""
    from core.services import fulfillment as fulfillment_module
    from core.services.payments import close_gateway_client

    await close_gateway_client()
    if fulfillment_module._fulfillment_client is not None:
        await fulfillment_module._fulfillment_client.close()
        fulfillment_module._fulfillment_client = None
