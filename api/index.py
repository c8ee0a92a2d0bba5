"""
Stamp Shop Orders - Main FastAPI Application

Single entry point for the storefront, webhook, worker and admin routes.
Cron jobs live in api/cron/ as standalone ASGI apps.
"""
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add project root to path for Vercel
_base_path = Path(__file__).parent.parent
if str(_base_path) not in sys.path:
    sys.path.insert(0, str(_base_path))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.jobs.config import get_job_intervals, is_scheduler_enabled
from core.jobs.scheduler import build_default_runner, get_runner, set_runner
from core.logging import get_logger
from core.routers import admin_router, webapp_router, webhooks_router, workers_router
from core.routers.deps import shutdown_services
from core.routers.errors import register_error_handlers
from core.services.database import close_database, init_database, is_database_initialized

logger = get_logger(__name__)


# ==================== FASTAPI APP ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    if is_scheduler_enabled():
        db = await init_database()
        reconcile_interval, abandon_interval = get_job_intervals()
        runner = build_default_runner(db, reconcile_interval, abandon_interval)
        set_runner(runner)
        runner.start()
    yield
    # Shutdown
    runner = get_runner()
    if runner is not None:
        await runner.stop()
        set_runner(None)
    await shutdown_services()
    if is_database_initialized():
        await close_database()


app = FastAPI(
    title="Stamp Shop Orders",
    description="Order and payment reconciliation API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(webapp_router)
app.include_router(webhooks_router)
app.include_router(workers_router)
app.include_router(admin_router, prefix="/api/admin")


# ==================== HEALTH CHECK ====================

@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    runner = get_runner()
    return {
        "status": "ok",
        "service": "stampshop-orders",
        "scheduler": bool(runner and runner.running),
    }
