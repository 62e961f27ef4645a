import app.core.config  # noqa: F401  (loads .env before settings are read)

import sqlite3

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import browser, dashboard, health, testrail
from app.core.dependencies import get_job_manager
from app.core.errors import ConfigError, PersistenceError, TransientRemoteError
from app.core.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from app.services.error_handler import ErrorHandler

app = FastAPI(title="TestRail Viewer", version="0.1.0")

# Added last runs first: error handling wraps request logging.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ErrorHandlingMiddleware)

app.include_router(health.router)
app.include_router(browser.router)
app.include_router(dashboard.router)
app.include_router(testrail.router)


async def _structured_error(request: Request, exc: Exception):
    return ErrorHandler.handle_exception(exc, request)


for _exc_type in (ConfigError, TransientRemoteError, PersistenceError, sqlite3.Error):
    app.add_exception_handler(_exc_type, _structured_error)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    correlation_id = getattr(request.state, "correlation_id", None) or "unknown"
    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors.setdefault(field_path, []).append(error["msg"])
    body = ErrorHandler.error_body("Validation error", "VALIDATION_ERROR", correlation_id)
    body["field_errors"] = field_errors
    return JSONResponse(status_code=400, content=body)


@app.on_event("shutdown")
def on_shutdown():
    get_job_manager().shutdown(wait=False)
