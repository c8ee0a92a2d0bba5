"""
QStash Workers Router - Main Router

Aggregates all worker endpoints. Every worker verifies the QStash signature.
"""
from fastapi import APIRouter

from .fulfillment import fulfillment_router

router = APIRouter(prefix="/api/workers", tags=["workers"])

router.include_router(fulfillment_router)
