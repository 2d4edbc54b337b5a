"""Route modules."""

from .jobs import router as jobs_router
from .media import router as media_router

__all__ = ["jobs_router", "media_router"]
