"""Sovereign Credit Intelligence - API Routers"""
from .profiles import router as profiles_router
from .outcomes import router as outcomes_router
from .events import router as events_router

__all__ = [
    "profiles_router",
    "outcomes_router",
    "events_router",
]
