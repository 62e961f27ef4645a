"""Dashboard API endpoints: coverage, monthly history, execution log, report trigger."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.core.config import config
from app.core.dependencies import (
    get_case_cache,
    get_dashboard_store,
    get_execution_log,
    get_job_manager,
)
from app.models.responses import (
    AutomationCoverageResponse,
    EpicProgressStat,
    ExecutionLogEntry,
    JobStatusResponse,
    MonthlyAutomationStat,
    TriggerResponse,
)
from app.services.aggregator import get_automation_coverage

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/automation-coverage/{project_id}", response_model=AutomationCoverageResponse)
def automation_coverage(project_id: int = Path(..., gt=0), cache=Depends(get_case_cache)):
    """Current coverage for a project, computed from the cache."""
    coverage = get_automation_coverage(cache.db_path, project_id)
    return {
        "project_id": project_id,
        "total": coverage.total_cases,
        "automated": coverage.automated_cases,
        "manual": coverage.manual_cases,
        "not_required": coverage.not_required_cases,
        "automationPercentage": coverage.automation_percentage,
    }


@router.get("/current-automation-stats", response_model=MonthlyAutomationStat | None)
def current_automation_stats(store=Depends(get_dashboard_store)):
    """Latest persisted monthly snapshot, or null before the first run."""
    return store.latest_automation_stats()


@router.get("/automation-history", response_model=list[MonthlyAutomationStat])
def automation_history(store=Depends(get_dashboard_store)):
    return store.automation_history(config.DASHBOARD_HISTORY_LIMIT)


@router.get("/epic-history", response_model=list[EpicProgressStat])
def epic_history(epic_key: str | None = None, store=Depends(get_dashboard_store)):
    return store.epic_history(config.DASHBOARD_HISTORY_LIMIT, epic_key=epic_key)


@router.get("/execution-logs", response_model=list[ExecutionLogEntry])
def execution_logs(
    limit: int | None = Query(None, ge=1),
    log=Depends(get_execution_log),
):
    """Most recent execution-log entries, newest first."""
    if limit is None:
        limit = config.EXECUTION_LOG_LIMIT
    return log.tail(min(limit, config.EXECUTION_LOG_MAX_LIMIT))


@router.post("/trigger-monthly-report", response_model=TriggerResponse)
def trigger_monthly_report(jobs=Depends(get_job_manager)):
    """Start a monthly report in the background and acknowledge immediately.

    The outcome is available from the status endpoint and the execution log.
    """
    job = jobs.enqueue()
    return {
        "success": True,
        "message": "Monthly report started",
        "job_id": job.id,
        "status_url": f"{router.prefix}/monthly-report/{job.id}",
    }


@router.get("/monthly-report/{job_id}", response_model=JobStatusResponse)
def monthly_report_status(job_id: str, jobs=Depends(get_job_manager)):
    status = jobs.status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Monthly report job not found")
    return status
