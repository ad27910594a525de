"""
Error Handling Middleware

Provides consistent, informative error responses across the API.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses for unexpected errors (internals only in debug mode)

Usage:
    from streak_engine.middleware.error_handling import setup_error_handling

    setup_error_handling(app, debug=settings.DEBUG)

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: streak_engine.exceptions → structured JSON response with
      the error's status code. Client errors keep their details, since
      they tell the caller what to fix (e.g. which checks are outstanding).
    - Exception: Catch-all for unexpected errors → sanitized 500 response

Caveat: BaseHTTPMiddleware cannot catch exceptions raised after the
response body starts streaming (not an issue for JSON APIs).
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from streak_engine.exceptions import ServiceError, StateError

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str  # Error code (e.g., "policy_limit")
    message: str  # Human-readable message
    error_id: str  # For log correlation
    details: Optional[dict] = None
    timestamp: datetime


def _error_content(
    error_id: str, error_code: str, message: str, details: Optional[dict]
) -> dict:
    return ErrorResponse(
        error=error_code,
        message=message,
        error_id=error_id,
        details=details,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")


# =============================================================================
# Error Handling Middleware
# =============================================================================


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details unless debug is enabled
    """

    def __init__(self, app, debug: bool = False):
        """
        Initialize middleware.

        Args:
            app: FastAPI/Starlette application
            debug: Whether to include stack traces in responses
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            return await call_next(request)

        except HTTPException:
            raise

        except ServiceError as e:
            # Caller bugs and server-side failures are errors, the rest is
            # expected client behaviour
            level = (
                logging.ERROR
                if isinstance(e, StateError) or e.status_code >= 500
                else logging.WARNING
            )
            logger.log(
                level,
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                    "details": e.details,
                },
            )

            show_details = self.debug or e.status_code < 500
            return JSONResponse(
                status_code=e.status_code,
                content=_error_content(
                    error_id,
                    e.error_code,
                    e.message,
                    e.details if show_details else None,
                ),
            )

        except Exception as e:
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )

            details = None
            if self.debug:
                details = {
                    "exception": type(e).__name__,
                    "message": str(e),
                    "traceback": traceback.format_exc(),
                }
            return JSONResponse(
                status_code=500,
                content=_error_content(
                    error_id,
                    "internal_server_error",
                    "An unexpected error occurred",
                    details,
                ),
            )


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Args:
        app: FastAPI application instance
        debug: Whether to include stack traces in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")
