"""Route modules."""

from .admin import router as admin_router
from .audio_analysis import router as audio_analysis_router
from .organizations import router as organizations_router
from .storage import router as storage_router
from .webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "audio_analysis_router",
    "organizations_router",
    "storage_router",
    "webhooks_router",
]
