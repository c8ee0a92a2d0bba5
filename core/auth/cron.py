"""Cron secret validation."""
import hmac
import os

from fastapi import Header, HTTPException

from core.errors import ERROR_UNAUTHORIZED


def is_cron_authorized(authorization: str | None) -> bool:
    """Bearer CRON_SECRET check usable outside FastAPI dependencies."""
    cron_secret = os.environ.get("CRON_SECRET", "")
    if not cron_secret or not authorization:
        return False
    return hmac.compare_digest(authorization, f"Bearer {cron_secret}")


async def verify_cron_secret(
    authorization: str = Header(None, alias="Authorization")
):
    """
    Verify CRON_SECRET for scheduled jobs.

    Use for the reconcile / abandonment cron endpoints.
    """
    if not os.environ.get("CRON_SECRET", ""):
        raise HTTPException(status_code=500, detail="CRON_SECRET not configured")

    if not is_cron_authorized(authorization):
        raise HTTPException(status_code=401, detail=ERROR_UNAUTHORIZED)

    return True
