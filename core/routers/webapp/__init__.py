"""WebApp API Router.

Storefront endpoints: checkout, payments and customer order access.
"""

from fastapi import APIRouter

from .orders import router as orders_router

router = APIRouter(tags=["webapp"])

router.include_router(orders_router)

__all__ = ["router"]
