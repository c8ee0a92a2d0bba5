"""
Cancel Abandoned Orders Cron Job
Schedule: */10 * * * * (every 10 minutes)

Cancels PENDING orders older than ABANDON_AFTER_MINUTES and releases their
coupon reservations. `?dry_run=1` only reports what would be cancelled.
"""
import sys
from datetime import UTC, datetime
from pathlib import Path

# Add project root to path for imports BEFORE any core.* imports
_base_path = Path(__file__).parent.parent.parent
if str(_base_path) not in sys.path:
    sys.path.insert(0, str(_base_path))

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.auth import is_cron_authorized
from core.jobs.abandonment import AbandonmentJob
from core.logging import get_logger
from core.services.database import get_database_async

logger = get_logger(__name__)

# ASGI app (only export app to Vercel, avoid 'handler' symbol)
app = FastAPI()


@app.get("/api/cron/cancel_abandoned")
async def cancel_abandoned_entrypoint(request: Request):
    """
    Vercel Cron entrypoint.
    """
    if not is_cron_authorized(request.headers.get("Authorization")):
        return JSONResponse({"ok": False, "error": "Unauthorized"}, status_code=401)

    dry_run = request.query_params.get("dry_run", "").lower() in ("1", "true", "yes")
    now = datetime.now(UTC)
    try:
        db = await get_database_async()
        summary = await AbandonmentJob(db).run_once(now, dry_run=dry_run)
    except Exception as e:
        logger.error(f"Abandonment cron failed: {e}", exc_info=True)
        return JSONResponse({"ok": False, "error": str(e), "timestamp": now.isoformat()}, status_code=500)

    return JSONResponse({"ok": True, "timestamp": now.isoformat(), **summary.to_dict()})
