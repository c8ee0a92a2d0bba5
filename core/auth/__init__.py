"""Authentication package."""
from .admin import verify_admin
from .cron import is_cron_authorized, verify_cron_secret

__all__ = [
    "verify_admin",
    "is_cron_authorized",
    "verify_cron_secret",
]
