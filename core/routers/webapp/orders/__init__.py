"""Orders Module.

Checkout, payment creation and customer order access.
"""

from fastapi import APIRouter

from .checkout import checkout_router
from .lookup import lookup_router
from .payments import payments_router

router = APIRouter()
router.include_router(checkout_router)
router.include_router(payments_router)
router.include_router(lookup_router)

__all__ = ["router"]
