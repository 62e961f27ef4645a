"""Live TestRail proxy endpoints."""

from fastapi import APIRouter, Depends, Path

from app.core.config import config
from app.core.dependencies import get_testrail_client

router = APIRouter(prefix="/api", tags=["testrail"])


@router.get("/case/{case_id}")
def get_case(case_id: int = Path(..., gt=0), client=Depends(get_testrail_client)):
    return client.get_case(case_id)


@router.get("/reports/{project_id}")
def get_reports(project_id: int = Path(..., gt=0), client=Depends(get_testrail_client)):
    return client.get_reports(project_id)


@router.get("/report/run/{report_id}")
def run_report(report_id: int = Path(..., gt=0), client=Depends(get_testrail_client)):
    return client.run_report(report_id)


@router.get("/suites/{project_id}")
def get_suites(project_id: int = Path(..., gt=0), client=Depends(get_testrail_client)):
    return client.get_suites(project_id)


@router.get("/cases/{project_id}/{suite_id}")
def get_cases(
    project_id: int = Path(..., gt=0),
    suite_id: int = Path(..., gt=0),
    client=Depends(get_testrail_client),
):
    return client.get_cases(project_id, suite_id=suite_id)


@router.get("/fixed-reports")
def fixed_reports():
    """Reports pinned on the dashboard (Ivision, Fastlane)."""
    return config.FIXED_REPORTS
