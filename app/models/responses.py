"""Response models for API endpoints."""

from typing import Any

from pydantic import BaseModel


class BrowserProject(BaseModel):
    id: int
    name: str
    is_completed: int
    suite_mode: int
    announcement: str


class BrowserSuite(BaseModel):
    id: int
    project_id: int
    name: str
    description: str
    is_master: int


class BrowserSection(BaseModel):
    id: int
    suite_id: int
    name: str | None = None
    description: str | None = None
    parent_id: int | None = None
    depth: int | None = None


class BrowserCase(BaseModel):
    id: int
    section_id: int
    section_name: str | None = None
    title: str | None = None
    custom_preconds: str | None = None
    custom_steps: str | None = None
    custom_steps_separated: list[dict[str, Any]] | None = None
    custom_expected: str | None = None
    type_id: int | None = None
    priority_id: int | None = None
    estimate: str | None = None
    refs: str | None = None
    custom_automation_type: int | None = None


class AutomationCoverageResponse(BaseModel):
    """Live coverage computed from the cache."""
    project_id: int
    total: int
    automated: int
    manual: int
    not_required: int
    automationPercentage: float


class MonthlyAutomationStat(BaseModel):
    id: int
    month: str
    year: int
    total_cases: int
    automated_cases: int
    manual_cases: int
    not_required_cases: int
    automation_percentage: float
    created_at: str | None = None


class EpicProgressStat(BaseModel):
    id: int
    epic_key: str
    month: str
    year: int
    total_stories: int
    done_stories: int
    todo_stories: int
    po_review_stories: int
    declined_stories: int
    progress_percentage: float
    created_at: str | None = None


class ExecutionLogEntry(BaseModel):
    id: int
    execution_date: str | None = None
    type: str
    status: str
    message: str | None = None
    details: Any = None
    job_id: str | None = None


class TriggerResponse(BaseModel):
    """Acknowledgement of a submitted monthly report."""
    success: bool = True
    message: str
    job_id: str
    status_url: str


class JobStatusResponse(BaseModel):
    id: str
    status: str
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    meta: dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: str
    error_code: str | None = None
    timestamp: str | None = None
    correlation_id: str | None = None
