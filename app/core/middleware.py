"""FastAPI middleware configuration."""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.services.error_handler import ErrorHandler


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Assigns correlation ids and turns unhandled errors into structured JSON."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = time.time() - start_time
            print(
                f"[ERROR] {correlation_id} - {request.method} {request.url} - "
                f"{type(exc).__name__} - Duration: {duration:.3f}s",
                flush=True,
            )
            return ErrorHandler.handle_exception(exc, request)

        response.headers["X-Correlation-ID"] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        print(
            f"[REQUEST] {correlation_id} - {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Duration: {duration:.3f}s",
            flush=True,
        )
        return response
