"""
Reconcile Pending Orders Cron Job
Schedule: */5 * * * * (every 5 minutes)

Checks PENDING orders past the grace period against Mercado Pago and applies
what the gateway reports. Covers lost or failed webhooks.
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
from core.jobs.reconciliation import ReconciliationJob
from core.logging import get_logger
from core.services.database import get_database_async

logger = get_logger(__name__)

# ASGI app (only export app to Vercel, avoid 'handler' symbol)
app = FastAPI()


@app.get("/api/cron/reconcile_pending")
async def reconcile_pending_entrypoint(request: Request):
    """
    Vercel Cron entrypoint.
    """
    if not is_cron_authorized(request.headers.get("Authorization")):
        return JSONResponse({"ok": False, "error": "Unauthorized"}, status_code=401)

    now = datetime.now(UTC)
    try:
        db = await get_database_async()
        summary = await ReconciliationJob(db).run_once(now)
    except Exception as e:
        logger.error(f"Reconciliation cron failed: {e}", exc_info=True)
        return JSONResponse({"ok": False, "error": str(e), "timestamp": now.isoformat()}, status_code=500)

    return JSONResponse({"ok": True, "timestamp": now.isoformat(), **summary.to_dict()})
