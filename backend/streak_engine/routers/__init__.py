"""API routers."""

from streak_engine.routers.streaks import router as streaks_router

__all__ = ["streaks_router"]
