"""Database package: engine, session factory and table models."""

from streak_engine.db.base import Base, async_session_maker, engine, get_db, init_db

__all__ = ["Base", "async_session_maker", "engine", "get_db", "init_db"]
