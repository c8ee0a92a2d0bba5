"""Admin API key validation."""
import hmac
import os

from fastapi import Header, HTTPException

from core.errors import ERROR_UNAUTHORIZED
from core.logging import get_logger

logger = get_logger(__name__)


async def verify_admin(
    authorization: str = Header(None, alias="Authorization")
) -> str:
    """
    Verify `Authorization: Bearer <ADMIN_API_KEY>`.

    Returns the actor name recorded on admin transitions.
    """
    admin_key = os.environ.get("ADMIN_API_KEY", "")
    if not admin_key:
        logger.error("ADMIN_API_KEY not configured, admin API disabled")
        raise HTTPException(status_code=503, detail="Admin API not configured")

    if not authorization or not hmac.compare_digest(authorization, f"Bearer {admin_key}"):
        raise HTTPException(status_code=401, detail=ERROR_UNAUTHORIZED)

    return "admin"
