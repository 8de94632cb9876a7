"""Global error handling middleware.

This module provides centralized exception handling with
structured JSON responses and request tracking.
"""

import logging
import traceback
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from photobook.core.exceptions import AppException

logger = logging.getLogger(__name__)


def _error_response(exc: AppException, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "details": exc.details,
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for catching and formatting all exceptions.

    Converts exceptions to structured JSON responses with
    request IDs for debugging and correlation.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """Process request and handle any exceptions.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware/handler in chain.

        Returns:
            Response from handler or error response.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        except AppException as exc:
            logger.warning(f"Application error [{request_id}]: {exc.message}")
            return _error_response(exc, request_id)

        except Exception as exc:
            logger.error(
                f"Unhandled exception [{request_id}] on {request.method} {request.url.path}: {exc}\n"
                f"{traceback.format_exc()}"
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers for the FastAPI app.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request,
        exc: AppException,
    ) -> JSONResponse:
        """Render an AppException raised inside an endpoint or dependency."""
        request_id = getattr(request.state, "request_id", "unknown")
        if exc.status_code >= 500:
            logger.error(f"Application error [{request_id}]: {exc.message}")
        else:
            logger.info(f"{exc.status_code} [{request_id}]: {exc.message}")
        return _error_response(exc, request_id)
