"""
Middleware Package

Provides FastAPI middleware for error handling.
"""

from streak_engine.middleware.error_handling import (
    ErrorHandlingMiddleware,
    setup_error_handling,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "setup_error_handling",
]
