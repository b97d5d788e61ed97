"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from campusdesk.core import ApplicationException, ErrorKind
from campusdesk.shared.infrastructure.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
}


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an ``X-Correlation-ID``.

    The id is echoed on the response and stamped on every log record
    written while the request is handled.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log line per request; the correlation id comes from the log context."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        context = {"method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception as e:
            context["error"] = str(e)
            context["response_time_ms"] = int((time.perf_counter() - start_time) * 1000)
            logger.error("Request failed", extra=context)
            raise

        context["status_code"] = response.status_code
        context["response_time_ms"] = int((time.perf_counter() - start_time) * 1000)
        logger.info("Request completed", extra=context)
        return response


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Maps engine failures to HTTP responses.

    Expected failures (validation, transition, forbidden, not found) surface
    their reason directly; anything else is treated as an infrastructure error.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = STATUS_BY_KIND.get(exc.kind, 500)

    if status_code == 500:
        logger.error(
            "Application error",
            extra={
                "correlation_id": correlation_id,
                "path": request.url.path,
                "error_type": type(exc).__name__,
                "error_message": exc.message
            }
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "correlation_id": correlation_id}
        )

    logger.info(
        "Request rejected",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "error_kind": exc.kind.value,
            "error_message": exc.message
        }
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": exc.kind.value,
            "details": exc.details,
            "correlation_id": correlation_id
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
