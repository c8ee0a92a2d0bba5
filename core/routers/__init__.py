"""
FastAPI Routers Package

Endpoints grouped by audience without creating new serverless functions.
All routers are included in api/index.py.
"""

from core.routers.admin import router as admin_router
from core.routers.webapp import router as webapp_router
from core.routers.webhooks import router as webhooks_router
from core.routers.workers import router as workers_router

__all__ = [
    "webhooks_router",
    "admin_router",
    "workers_router",
    "webapp_router",
]
