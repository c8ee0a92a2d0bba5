"""Workers Module.

QStash workers for guaranteed background operations.
"""

from .router import router

__all__ = ["router"]
