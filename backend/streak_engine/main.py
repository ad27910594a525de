"""
Streak Engine API

Application factory for the streak service.

Usage:
    uvicorn streak_engine.main:app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from streak_engine.config import settings
from streak_engine.db.base import engine, init_db
from streak_engine.middleware.error_handling import setup_error_handling
from streak_engine.routers import streaks_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_AUTO_CREATE:
        await init_db()
        logger.info("Database tables created")
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    setup_error_handling(app, debug=settings.DEBUG)
    app.include_router(streaks_router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
