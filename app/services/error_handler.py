"""Structured error responses for the read API."""

import sqlite3
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from app.core.errors import ConfigError, PersistenceError, TransientRemoteError


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorHandler:
    """Centralized error handling service."""

    @staticmethod
    def handle_exception(exc: Exception, request: Request) -> JSONResponse:
        """Handle any exception and return structured response."""
        correlation_id = getattr(request.state, "correlation_id", str(uuid.uuid4()))

        ErrorHandler.log_error(
            exc,
            {
                "correlation_id": correlation_id,
                "method": request.method,
                "url": str(request.url),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        if isinstance(exc, HTTPException):
            status_code, detail, error_code = exc.status_code, exc.detail, f"HTTP_{exc.status_code}"
        elif isinstance(exc, ConfigError):
            status_code, detail, error_code = 500, "Server missing TestRail credentials", "CONFIG_ERROR"
        elif isinstance(exc, TransientRemoteError):
            status_code, detail, error_code = 502, f"External API error: {exc}", "EXTERNAL_API_ERROR"
        elif isinstance(exc, (sqlite3.Error, PersistenceError)):
            # Store internals (paths, SQL) stay in the server log.
            status_code, detail, error_code = 500, "Failed to read local cache", "CACHE_ERROR"
        else:
            status_code, detail, error_code = 500, "An unexpected error occurred", "INTERNAL_SERVER_ERROR"

        return JSONResponse(
            status_code=status_code,
            content=ErrorHandler.error_body(detail, error_code, correlation_id),
            headers={"X-Correlation-ID": correlation_id},
        )

    @staticmethod
    def error_body(detail: Any, error_code: str, correlation_id: str) -> Dict[str, Any]:
        return {
            "detail": detail,
            "error_code": error_code,
            "timestamp": _timestamp(),
            "correlation_id": correlation_id,
        }

    @staticmethod
    def log_error(exc: Exception, context: Dict[str, Any]) -> str:
        """Log error with context and return correlation ID."""
        correlation_id = context.get("correlation_id") or str(uuid.uuid4())
        print(
            f"[ERROR] {correlation_id} - {type(exc).__name__}: {exc} - Context: {context}",
            file=sys.stderr,
            flush=True,
        )
        return correlation_id
