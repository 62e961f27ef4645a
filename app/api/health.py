"""Health check API endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.core.dependencies import get_case_cache, get_dashboard_store, get_job_manager
from testrail_client import DEFAULT_CASES_PAGE_SIZE, DEFAULT_HTTP_BACKOFF, DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT

router = APIRouter(tags=["health"])


@router.get("/healthz")
def health_check(
    cache=Depends(get_case_cache),
    store=Depends(get_dashboard_store),
    jobs=Depends(get_job_manager),
):
    """Basic health check: store reachability, job queue, HTTP settings."""
    status = {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat(), "checks": {}}

    try:
        status["checks"]["cache"] = {"status": "healthy", "tables": cache.table_counts()}
    except Exception as e:
        status["ok"] = False
        status["checks"]["cache"] = {"status": "unhealthy", "error": type(e).__name__}

    try:
        latest = store.latest_automation_stats()
        status["checks"]["dashboard"] = {
            "status": "healthy",
            "latest_snapshot": f"{latest['month']} {latest['year']}" if latest else None,
        }
    except Exception as e:
        status["ok"] = False
        status["checks"]["dashboard"] = {"status": "unhealthy", "error": type(e).__name__}

    status["queue"] = jobs.stats()
    status["http"] = {
        "timeout_seconds": DEFAULT_HTTP_TIMEOUT,
        "retries": DEFAULT_HTTP_RETRIES,
        "backoff_seconds": DEFAULT_HTTP_BACKOFF,
        "cases_page_size": DEFAULT_CASES_PAGE_SIZE,
    }
    return status
