from services.calendar_analytics.api.auth import router as auth_router
from services.calendar_analytics.api.calendar import router as calendar_router
from services.calendar_analytics.api.directory import router as directory_router

__all__ = ["auth_router", "calendar_router", "directory_router"]
