"""
Admin API Router

Admin-only endpoints. Every route requires the admin API key.
"""
from fastapi import APIRouter, Depends

from core.auth import verify_admin

from .orders import router as orders_router

# Create main router
router = APIRouter(tags=["admin"], dependencies=[Depends(verify_admin)])

router.include_router(orders_router)

__all__ = ["router"]
