"""FastAPI dependency injection setup."""

from functools import lru_cache

from fastapi import HTTPException

from app.core.config import config
from app.services.aggregator import MonthlyAggregator
from app.services.case_cache import CaseCacheStore
from app.services.dashboard_store import DashboardStore
from app.services.execution_log import ExecutionLog
from app.services.jobs import MonthlyReportJobManager
from jira_client import JiraClient
from testrail_client import AuthConfigError, ConfigError, TestRailClient


@lru_cache()
def get_case_cache() -> CaseCacheStore:
    """Get the TestRail cache store."""
    return CaseCacheStore(config.CACHE_DB_PATH).initialize()


@lru_cache()
def get_dashboard_store() -> DashboardStore:
    """Get the monthly time-series store."""
    return DashboardStore(config.DASHBOARD_DB_PATH).initialize()


@lru_cache()
def get_execution_log() -> ExecutionLog:
    """Get the execution log."""
    return ExecutionLog(config.DASHBOARD_DB_PATH)


def get_testrail_client() -> TestRailClient:
    """Get TestRail client instance."""
    try:
        return TestRailClient.from_env()
    except AuthConfigError:
        raise HTTPException(status_code=500, detail="Server missing TestRail credentials")


def build_jira_client() -> JiraClient | None:
    """Jira client from the environment, or None when credentials are absent."""
    try:
        return JiraClient.from_env()
    except ConfigError:
        return None


def run_monthly_report(job_id: str | None = None) -> dict:
    """Run one monthly aggregation with the current configuration."""
    aggregator = MonthlyAggregator.from_config(config, jira_client=build_jira_client())
    return aggregator.run(job_id=job_id).to_dict()


@lru_cache()
def get_job_manager() -> MonthlyReportJobManager:
    """Get the background monthly report job manager."""
    return MonthlyReportJobManager(
        runner=run_monthly_report,
        log=get_execution_log(),
        max_workers=config.MONTHLY_JOB_WORKERS,
        max_history=config.MONTHLY_JOB_HISTORY,
    )
